"""
Relay settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Relay settings with defaults for development."""

    # Listener
    host: str = "0.0.0.0"
    port: int = 8787

    # Only upgrade requests to this exact path become relay connections
    subscribe_path: str = "/"
    health_path: str = "/health"
    metrics_path: str = "/metrics"

    # Comma-separated list of allowed origins (empty uses default localhost list)
    allowed_origins: str = ""
    # Requests without an Origin header (non-browser peers) are admitted unless this is set
    ws_require_origin: bool = False

    # Environment
    environment: str = "development"
    debug: bool = False

    # Heartbeat
    ws_heartbeat_interval: float = 30.0  # Seconds between probe cycles
    ws_probe_timeout: float = 10.0  # A probe that cannot be written in time counts as failed

    # Delivery
    ws_max_buffered_bytes: int = 1_000_000  # Skip delivery above this many unsent bytes
    ws_max_topics_per_message: int = 64
    ws_max_message_size: int = 1024 * 1024  # 1 MiB inbound frame limit
    # Transport high-water mark. Must stay above ws_max_buffered_bytes plus one
    # frame so that a send admitted by the backpressure check never waits on drain.
    ws_write_limit: int = 4 * 1024 * 1024

    # Limits (0 = unlimited)
    ws_max_total_connections: int = 0

    # Shutdown
    ws_close_timeout: float = 5.0
    ws_shutdown_timeout: float = 10.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def allowed_origin_set(self) -> frozenset[str]:
        """Parsed allow-set; empty when ALLOWED_ORIGINS is not configured."""
        return frozenset(o.strip() for o in self.allowed_origins.split(",") if o.strip())

    def validate_production_settings(self) -> list[str]:
        """
        Validate that the relay is safely configured for production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if not self.allowed_origins:
                errors.append(
                    "ALLOWED_ORIGINS must be set in production (comma-separated list of allowed origins)"
                )

            if self.debug:
                errors.append("DEBUG must be False in production")

        if self.ws_write_limit <= self.ws_max_buffered_bytes + self.ws_max_message_size:
            errors.append(
                "WS_WRITE_LIMIT must exceed WS_MAX_BUFFERED_BYTES + WS_MAX_MESSAGE_SIZE"
            )

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()
