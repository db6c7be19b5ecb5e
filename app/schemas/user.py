"""User schemas for API validation.

Request fields are all optional at the schema level; presence and format are
checked by ``AuthService`` so that missing fields produce the 400 envelope.
Wire names are camelCase, matching the web client.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserSignup(BaseModel):
    """Schema for user registration."""
    fullname: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserLogin(BaseModel):
    """Schema for user login."""
    username: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(BaseModel):
    """Refresh token supplied in the body when the cookie is unavailable."""
    refresh_token: Optional[str] = Field(None, alias="refreshToken")

    class Config:
        populate_by_name = True


class ProfileUpdate(BaseModel):
    """Schema for updating the current user's profile."""
    new_fullname: Optional[str] = Field(None, alias="newFullname")
    new_username: Optional[str] = Field(None, alias="newUsername")
    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: Optional[str] = Field(None, alias="newPassword")

    class Config:
        populate_by_name = True


class AccountDelete(BaseModel):
    current_password: Optional[str] = Field(None, alias="currentPassword")

    class Config:
        populate_by_name = True


class UserResponse(BaseModel):
    """Public view of a user; never carries the password or refresh token."""
    id: str
    fullname: str = Field(validation_alias="full_name")
    username: str
    email: str
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(None, serialization_alias="updatedAt")

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    user: UserResponse
    access_token: str = Field(serialization_alias="accessToken")


class AccessTokenResponse(BaseModel):
    access_token: str = Field(serialization_alias="accessToken")
