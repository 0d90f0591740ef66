from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FIZZPAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Fizzpan Order"
    app_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8085
    log_level: str = "INFO"

    # Backend-as-a-service
    backend_mode: str = "memory"  # "memory" | "rest"
    backend_url: str = "http://localhost:54321"
    backend_key: str = ""
    backend_timeout: float = 10.0
    role_lookup_timeout: float = 5.0

    # Legacy REST API
    legacy_api_url: Optional[str] = None
    legacy_timeout: float = 10.0

    # Sessions
    session_cookie: str = "fizzpan_session"
    session_storage_key: str = "fizzpan-auth-token"
    access_token_ttl: int = 3600

    # Admin screens
    rows_per_page: int = 10

    # Uploads
    max_image_bytes: int = 5 * 1024 * 1024
    max_payload_bytes: int = 1024 * 1024

    # Memory backend seed
    seed_admin_email: str = "admin@fizzpan.local"
    seed_admin_password: str = "admin123"
    seed_admin_username: str = "admin"


@lru_cache
def get_settings() -> Settings:
    return Settings()
