"""Standalone relay server — run chat-relay without a host app.

Usage::

    cd samples/chat
    poetry run python app.py

    # Or via script entry point from anywhere:
    poetry run chat-relay

    # Custom port / HTTPS:
    PORT=9000 poetry run chat-relay
    HTTPS=1 poetry run chat-relay

Environment variables:
    HOST            — Bind address (default: 0.0.0.0)
    PORT            — Server port (default: 8000, 8443 with HTTPS)
    HTTPS           — Serve TLS with a self-signed cert (default: 0)
    SSL_CERTFILE    — Path to TLS certificate (auto-generated if missing)
    SSL_KEYFILE     — Path to TLS private key (auto-generated if missing)
    RELOAD          — Restart on source changes (default: 0)

Relay settings (HISTORY_LIMIT, OVERFLOW_POLICY, TYPING_TTL, ...) are read by
RelayConfig.from_env(). Loads .env from the current working directory or any
parent directory.
"""

import ipaddress
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Tuple

from chat_relay.config.relay_config import RelayConfig

logger = logging.getLogger(__name__)


# ── Self-signed certificate generation ───────────────────────────

CERT_VALID_DAYS = 90
CERT_HOSTS = ("localhost", "127.0.0.1", "::1")


def _subject_alt_names(hosts):
    from cryptography import x509

    names = []
    for host in hosts:
        try:
            names.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            names.append(x509.DNSName(host))
    return x509.SubjectAlternativeName(names)


def _build_self_signed(hosts=CERT_HOSTS, valid_days: int = CERT_VALID_DAYS) -> Tuple[bytes, bytes]:
    """Return ``(cert_pem, key_pem)`` for a fresh P-256 key, issued to the first host."""
    import datetime

    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hosts[0])])
    issued = datetime.datetime.now(datetime.timezone.utc)

    builder = x509.CertificateBuilder(
        issuer_name=subject,
        subject_name=subject,
        public_key=key.public_key(),
        serial_number=x509.random_serial_number(),
        not_valid_before=issued - datetime.timedelta(minutes=5),
        not_valid_after=issued + datetime.timedelta(days=valid_days),
    )
    builder = builder.add_extension(_subject_alt_names(hosts), critical=False)
    builder = builder.add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
    cert = builder.sign(key, hashes.SHA256())

    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert.public_bytes(serialization.Encoding.PEM), key_pem


def _ensure_self_signed_cert(cert_path: Path, key_path: Path, hosts=CERT_HOSTS) -> bool:
    """Write a dev certificate unless both files already exist.

    :return: True if new files were written
    """
    if cert_path.exists() and key_path.exists():
        return False

    cert_pem, key_pem = _build_self_signed(hosts)
    for path in (cert_path, key_path):
        path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(key_pem)
    key_path.chmod(0o600)
    cert_path.write_bytes(cert_pem)
    logger.info(f"[TLS] Generated self-signed certificate for {', '.join(hosts)}: {cert_path}")
    return True


# ── FastAPI app factory ──────────────────────────────────────────

def create_app(config: Optional[RelayConfig] = None):
    """Create the FastAPI application with its own broadcast hub.

    The hub is started and stopped by the app lifespan. Also called by
    uvicorn via the factory=True flag.
    """
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    from chat_relay.hub.broadcast_hub import BroadcastHub
    from chat_relay.server import build_ws_router

    config = config or RelayConfig.from_env()
    hub = BroadcastHub(config)

    @asynccontextmanager
    async def lifespan(_a):
        await hub.start()
        try:
            yield
        finally:
            await hub.stop()

    _app = FastAPI(title="chat-relay", docs_url=None, redoc_url=None, lifespan=lifespan)
    _app.state.hub = hub
    _app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST"],
    )
    _app.include_router(build_ws_router(hub, path=config.ws_path))
    return _app


# ── Entry point ──────────────────────────────────────────────────

def main():
    """Load .env, configure HTTPS if requested, and start the server."""
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    import uvicorn

    use_https = os.environ.get("HTTPS", "0") != "0"
    default_port = 8443 if use_https else 8000
    port = int(os.environ.get("PORT", str(default_port)))
    host = os.environ.get("HOST", "0.0.0.0")
    reload = os.environ.get("RELOAD", "0") != "0"

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )

    ssl_kwargs = {}
    if use_https:
        cert_dir = Path.home() / ".chat-relay" / "certs"
        cert_path = Path(os.environ.get("SSL_CERTFILE", str(cert_dir / "localhost.pem")))
        key_path = Path(os.environ.get("SSL_KEYFILE", str(cert_dir / "localhost-key.pem")))
        _ensure_self_signed_cert(cert_path, key_path)
        ssl_kwargs = {"ssl_certfile": str(cert_path), "ssl_keyfile": str(key_path)}
        proto = "wss"
    else:
        proto = "ws"

    ws_path = os.environ.get("WS_PATH", RelayConfig().ws_path)
    print(f"\n  chat-relay → {proto}://localhost:{port}{ws_path}\n")
    uvicorn.run(
        "chat_relay.standalone:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        reload_dirs=[str(Path(__file__).resolve().parent)] if reload else None,
        **ssl_kwargs,
    )


if __name__ == "__main__":
    main()
