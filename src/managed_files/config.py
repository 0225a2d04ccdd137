"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache

from pydantic import SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from managed_files.auth.quota import megabytes_to_bytes


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Secrets use SecretStr to prevent accidental logging.
    Database URL is assembled from individual components to match
    the official PostgreSQL Docker image environment variables.

    The signing key is deliberately optional here: its presence and
    length are enforced when the CapabilityCodec is built at startup,
    so a bad key stops the service instead of the settings import.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"
    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET", "POST", "PUT", "DELETE"]
    cors_allowed_headers: list[str] = [
        "Content-Type",
        "X-API-Key",
        "X-Application-Id",
    ]

    # --- PostgreSQL ---
    postgres_user: str = "managed_files"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "managed_files"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components.

        Uses psycopg v3 driver which supports both sync (create_engine)
        and async (create_async_engine) modes natively.
        """
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- S3 / MinIO ---
    s3_endpoint: str = "http://localhost:9000"
    s3_access_key: str = "minioadmin"
    s3_secret_key: SecretStr = SecretStr("minioadmin")
    s3_bucket: str = "attachments"

    # --- Signed URLs ---
    signed_url_secret_key: SecretStr | None = None
    signed_url_max_expiry_minutes: int | None = None
    # Base of links handed out to third parties. When unset, the
    # request's own base URL is used.
    public_base_url: str | None = None

    # --- API keys ---
    api_key_bcrypt_rounds: int = 12

    # --- Default tenant limits (megabytes, binary) ---
    default_max_file_size_mb: int | None = None
    default_max_storage_mb: int | None = None

    @property
    def default_max_file_size_bytes(self) -> int | None:
        if self.default_max_file_size_mb is None:
            return None
        return megabytes_to_bytes(self.default_max_file_size_mb)

    @property
    def default_max_storage_bytes(self) -> int | None:
        if self.default_max_storage_mb is None:
            return None
        return megabytes_to_bytes(self.default_max_storage_mb)

    # --- Convenience properties ---
    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from managed_files.config import get_settings
        settings = get_settings()
    """
    return Settings()


settings = get_settings()
