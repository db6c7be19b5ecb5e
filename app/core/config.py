"""Application configuration settings."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings

DEFAULT_ACCESS_SECRET = "dev-access-secret-change-in-production"
DEFAULT_REFRESH_SECRET = "dev-refresh-secret-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "VoiceAuth API"
    app_env: str = "development"
    debug: bool = True
    api_prefix: str = "/voice-web-app/api"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./voiceauth.db"

    # JWT Authentication (separate secrets per token class)
    access_token_secret: str = DEFAULT_ACCESS_SECRET
    refresh_token_secret: str = DEFAULT_REFRESH_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 10

    # Passwords
    bcrypt_rounds: int = 10

    # Same error for unknown username and wrong password on login
    unify_login_errors: bool = True

    # CORS
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Security
    allowed_hosts: str = "*"

    # Audio samples
    upload_dir: str = "./uploads"
    training_audio_folder: str = "voice-web-app/training-audio"
    max_audio_size_mb: int = 10
    allowed_audio_types: str = "audio/webm,audio/wav,audio/mp3,audio/mpeg,audio/ogg"
    list_audio_limit: int = 50

    # Cloudflare R2 (S3-compatible). Local storage is used when unset.
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = ""
    r2_public_url: str = ""

    # Base URL (for generating local file URLs)
    base_url: str = "http://localhost:8000"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in ("prod", "production")

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60

    @property
    def allowed_hosts_list(self) -> List[str]:
        """Get allowed hosts as a list."""
        return [host.strip() for host in self.allowed_hosts.split(",")]

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def allowed_audio_types_list(self) -> List[str]:
        return [mime.strip().lower() for mime in self.allowed_audio_types.split(",")]

    @property
    def max_audio_size_bytes(self) -> int:
        """Get max audio upload size in bytes."""
        return self.max_audio_size_mb * 1024 * 1024

    @property
    def effective_base_url(self) -> str:
        """Get base URL, constructing from host/port if not explicitly set."""
        if self.base_url and self.base_url != "http://localhost:8000":
            return self.base_url.rstrip("/")
        scheme = "https" if self.is_production else "http"
        host = self.host if self.host != "0.0.0.0" else "localhost"
        return f"{scheme}://{host}:{self.port}"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
