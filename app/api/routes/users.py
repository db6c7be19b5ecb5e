"""User account and session endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Request, Response, status

from app.api.cookies import clear_refresh_cookie, set_refresh_cookie
from app.core.dependencies import REFRESH_TOKEN_COOKIE, CurrentUser, DbSession
from app.core.rate_limiter import check_rate_limit, get_client_ip, rate_limiter
from app.schemas.common import ApiResponse, ok
from app.schemas.user import (
    AccessTokenResponse,
    AccountDelete,
    LoginResponse,
    ProfileUpdate,
    RefreshRequest,
    UserLogin,
    UserResponse,
    UserSignup,
)
from app.services.auth_service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# Signup
# ─────────────────────────────────────────────

@router.post("/signup", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def signup(body: UserSignup, db: DbSession):
    """
    Register a new user.
    No tokens are issued; the client logs in separately.
    """
    user = await AuthService.signup(db, body.fullname, body.username, body.email, body.password)
    return ok("User signed up successfully", UserResponse.model_validate(user))


# ─────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────

@router.post("/login", response_model=ApiResponse)
async def login(body: UserLogin, request: Request, response: Response, db: DbSession):
    """
    Authenticate a user.
    Returns the user and an access token; the refresh token is set as an HTTP-only cookie.
    """
    check_rate_limit("login_ip", get_client_ip(request))
    if body.username:
        check_rate_limit("login_username", body.username.strip().lower())

    result = await AuthService.login(db, body.username, body.password)
    rate_limiter.reset("login_username", result.user.username)

    set_refresh_cookie(response, result.refresh_token)
    return ok(
        "User logged in successfully",
        LoginResponse(user=UserResponse.model_validate(result.user), access_token=result.access_token),
    )


# ─────────────────────────────────────────────
# Refresh Token (Rotation)
# ─────────────────────────────────────────────

@router.post("/refresh-token", response_model=ApiResponse)
async def refresh_token(
    request: Request,
    response: Response,
    db: DbSession,
    body: Optional[RefreshRequest] = None,
):
    """
    Exchange the refresh token (cookie preferred, body fallback) for a new
    access token. The refresh token is rotated on every call.
    """
    check_rate_limit("refresh_ip", get_client_ip(request))

    incoming = request.cookies.get(REFRESH_TOKEN_COOKIE) or (body.refresh_token if body else None)
    pair = await AuthService.refresh(db, incoming)

    set_refresh_cookie(response, pair.refresh_token)
    return ok("Access token refreshed", AccessTokenResponse(access_token=pair.access_token))


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=ApiResponse)
async def logout(current_user: CurrentUser, response: Response, db: DbSession):
    """Revoke the stored refresh token and clear the cookie."""
    await AuthService.logout(db, current_user)
    clear_refresh_cookie(response)
    return ok("User logged out successfully", {})


# ─────────────────────────────────────────────
# Current User
# ─────────────────────────────────────────────

@router.get("/current-user", response_model=ApiResponse)
async def current_user(current_user: CurrentUser):
    """Return the authenticated user's profile."""
    user = AuthService.get_current_user(current_user)
    return ok("Current user fetched successfully", UserResponse.model_validate(user))


# ─────────────────────────────────────────────
# Update Profile
# ─────────────────────────────────────────────

@router.put("/update-profile", response_model=ApiResponse)
async def update_profile(body: ProfileUpdate, current_user: CurrentUser, db: DbSession):
    """
    Update full name, username and/or password.
    Changing the password requires the current password.
    """
    user = await AuthService.update_profile(
        db,
        current_user,
        new_fullname=body.new_fullname,
        new_username=body.new_username,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    return ok("Profile updated successfully", UserResponse.model_validate(user))


# ─────────────────────────────────────────────
# Delete Account
# ─────────────────────────────────────────────

@router.delete("/delete-account", response_model=ApiResponse)
async def delete_account(
    current_user: CurrentUser,
    response: Response,
    db: DbSession,
    body: Optional[AccountDelete] = None,
):
    """Permanently delete the current user's account. Requires the current password."""
    confirmation = await AuthService.delete_account(
        db, current_user, body.current_password if body else None
    )
    clear_refresh_cookie(response)
    return ok("Account deleted successfully", confirmation)
