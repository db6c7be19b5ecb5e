"""Pydantic schemas for API request/response validation."""

from app.schemas.common import ApiResponse, ok
from app.schemas.user import (
    UserSignup,
    UserLogin,
    RefreshRequest,
    ProfileUpdate,
    AccountDelete,
    UserResponse,
    LoginResponse,
    AccessTokenResponse,
)
from app.schemas.audio import AudioSampleResponse, AudioListResponse

__all__ = [
    "ApiResponse",
    "ok",
    "UserSignup",
    "UserLogin",
    "RefreshRequest",
    "ProfileUpdate",
    "AccountDelete",
    "UserResponse",
    "LoginResponse",
    "AccessTokenResponse",
    "AudioSampleResponse",
    "AudioListResponse",
]
