from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

# Socket.IO keep-alive (seconds). Fixed, not configurable.
PING_INTERVAL_SEC = 25
PING_TIMEOUT_SEC = 60


class RelaySettings(BaseSettings):
    """
    Configuration for the signaling relay.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Browser dashboard allowed to open the Socket.IO channel ---
    frontend_url: str = "http://localhost:5173"

    # --- HTTP / Socket.IO listener ---
    http_host: str = "0.0.0.0"
    http_port: int = 3001

    # --- Negotiation ---
    # How long a viewer may wait between request-stream and its answer.
    # 0 disables the timer.
    session_timeout_sec: float = 30.0

    # --- Logging ---
    log_level: str = "INFO"
    debug: bool = False
