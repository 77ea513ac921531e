"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the connector host.

    Every field can be overridden by an environment variable carrying the
    ``IDCONNECT_`` prefix (case-insensitive), or from a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="IDCONNECT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    LOG_LEVEL: str = "INFO"

    # Attribute names whose values never appear in log records
    MASKED_ATTRIBUTES: list[str] = ["Password", "accountPassword"]

    # Seconds to wait for a pooled session; None waits forever
    SESSION_ACQUIRE_TIMEOUT: float | None = 30.0

    # Default database for the sample directory connector
    SAMPLE_DATABASE_URL: str = "sqlite://"

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000


settings = Settings()
