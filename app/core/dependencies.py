"""Shared FastAPI dependencies: database session and the authenticated user."""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import auth_error
from app.db.session import get_db
from app.models.user import User
from app.services.token_service import get_token_service

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

DbSession = Annotated[AsyncSession, Depends(get_db)]


def extract_access_token(request: Request) -> Optional[str]:
    """Cookie first, then ``Authorization: Bearer <token>``."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token

    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return None


async def get_current_user(request: Request, db: DbSession) -> User:
    """Resolve the access token to a user or fail with a 401 envelope."""
    token = extract_access_token(request)
    if not token:
        raise auth_error("Unauthorized request")

    payload = get_token_service().decode_access_token(token)

    user = await db.get(User, payload["sub"])
    if not user:
        logger.info(f"Access token subject no longer exists: {payload['sub']}")
        raise auth_error("Invalid Access Token")

    request.state.user_id = user.id
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
