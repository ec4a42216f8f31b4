import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from chat_relay.relay_types import OverflowPolicy

HISTORY_LIMIT = 100
MAX_BODY_LENGTH = 500
DEFAULT_WS_PATH = "/api/socket"


@dataclass
class RelayConfig:
    """Settings for the broadcast hub and its WebSocket endpoint."""
    history_limit: int = HISTORY_LIMIT
    """Number of messages kept in the shared history and replayed on join."""
    max_body_length: int = MAX_BODY_LENGTH
    """Longest accepted message body, in characters."""
    outbound_queue_size: int = 256
    """Payloads buffered per session before the overflow policy applies."""
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    """Whether a full outbound queue discards its oldest payload or drops the session."""
    max_dropped: Optional[int] = None
    """With DROP_OLDEST, drop the session once more than this many payloads were discarded. None disables."""
    inbound_queue_size: int = 1024
    """Events buffered in front of the hub loop."""
    typing_ttl: Optional[float] = None
    """Seconds after which an unrefreshed typing signal expires. None disables expiry."""
    typing_sweep_interval: float = 1.0
    """Seconds between expiry sweeps when typing_ttl is set."""
    ws_path: str = DEFAULT_WS_PATH
    """Path of the WebSocket endpoint and its status route."""
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    """Origins allowed by the CORS middleware."""

    def __post_init__(self):
        if isinstance(self.overflow_policy, str):
            self.overflow_policy = OverflowPolicy(self.overflow_policy)
        if self.history_limit < 1:
            raise ValueError(f"history_limit must be positive, got {self.history_limit}")
        if self.max_body_length < 1:
            raise ValueError(f"max_body_length must be positive, got {self.max_body_length}")
        if self.outbound_queue_size < 1:
            raise ValueError(f"outbound_queue_size must be positive, got {self.outbound_queue_size}")
        if self.inbound_queue_size < 1:
            raise ValueError(f"inbound_queue_size must be positive, got {self.inbound_queue_size}")
        if self.max_dropped is not None and self.max_dropped < 0:
            raise ValueError(f"max_dropped must not be negative, got {self.max_dropped}")
        if self.typing_ttl is not None and self.typing_ttl <= 0:
            raise ValueError(f"typing_ttl must be positive, got {self.typing_ttl}")
        if self.typing_sweep_interval <= 0:
            raise ValueError(f"typing_sweep_interval must be positive, got {self.typing_sweep_interval}")
        if not self.ws_path.startswith("/"):
            raise ValueError(f"ws_path must start with '/', got {self.ws_path!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        """Build a config from environment variables, falling back to defaults.

        :param environ: Mapping to read from, defaults to ``os.environ``
        :return: The resulting configuration
        :raises ValueError: If a variable cannot be parsed or is out of range
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        int_fields = {
            "HISTORY_LIMIT": "history_limit",
            "MAX_BODY_LENGTH": "max_body_length",
            "OUTBOUND_QUEUE_SIZE": "outbound_queue_size",
            "INBOUND_QUEUE_SIZE": "inbound_queue_size",
            "MAX_DROPPED": "max_dropped",
        }
        for var, name in int_fields.items():
            if env.get(var):
                kwargs[name] = int(env[var])

        float_fields = {
            "TYPING_TTL": "typing_ttl",
            "TYPING_SWEEP_INTERVAL": "typing_sweep_interval",
        }
        for var, name in float_fields.items():
            if env.get(var):
                kwargs[name] = float(env[var])

        if env.get("OVERFLOW_POLICY"):
            kwargs["overflow_policy"] = OverflowPolicy(env["OVERFLOW_POLICY"].strip().lower())
        if env.get("WS_PATH"):
            kwargs["ws_path"] = env["WS_PATH"]
        if env.get("CORS_ORIGINS"):
            kwargs["cors_origins"] = [o.strip() for o in env["CORS_ORIGINS"].split(",") if o.strip()]

        return cls(**kwargs)
