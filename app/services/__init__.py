"""Services for business logic."""

from app.services.auth_service import AuthService
from app.services.token_service import TokenService
from app.services.audio_service import AudioService
from app.services.storage_service import StorageService

__all__ = ["AuthService", "TokenService", "AudioService", "StorageService"]
