#!/usr/bin/env python3
"""Standalone relay app — run chat-relay as a WebSocket server.

    cd samples/chat
    poetry run python app.py

Starts on ws://localhost:8000/api/socket (wss://localhost:8443 with HTTPS=1).

Environment variables:
    PORT            — Server port (default: 8000)
    HTTPS           — Set to 1 for TLS with a self-signed certificate
    HISTORY_LIMIT   — Messages replayed to new clients (default: 100)
    TYPING_TTL      — Seconds before a silent "typing" indicator expires
"""
from chat_relay.standalone import main

if __name__ == "__main__":
    main()
