from .relay_config import RelayConfig, HISTORY_LIMIT, MAX_BODY_LENGTH, DEFAULT_WS_PATH

__all__ = ["RelayConfig", "HISTORY_LIMIT", "MAX_BODY_LENGTH", "DEFAULT_WS_PATH"]
