"""Test package for chat-relay."""
from dotenv import load_dotenv, find_dotenv

# Pick up a local .env if there is one; tests do not require it
load_dotenv(find_dotenv(usecwd=True))
