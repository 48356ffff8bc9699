"""Application configuration from environment variables."""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All config comes from env vars or .env file."""

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Shared secret for /api/* (empty = every authenticated call is rejected)
    API_KEY: str = ""

    # Expiry / cleanup
    DEFAULT_EXPIRY_MINUTES: float = 180
    CLEANUP_INTERVAL_SECONDS: float = 60

    # Storage
    UPLOAD_DIR: str = "./uploads"
    METADATA_PATH: str = "./data/metadata.json"
    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024  # 100MB
    STATIC_DIR: str = "./public"

    PUBLIC_BASE_URL: str = ""
    CORS_ORIGINS: str = "*"

    @field_validator("DEFAULT_EXPIRY_MINUTES", "CLEANUP_INTERVAL_SECONDS", "MAX_UPLOAD_BYTES")
    @classmethod
    def must_be_positive(cls, value):
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
