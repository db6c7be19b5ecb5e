"""Refresh-token cookie attributes."""

from fastapi import Response

from app.core.config import get_settings
from app.core.dependencies import REFRESH_TOKEN_COOKIE


def _cookie_policy() -> dict:
    settings = get_settings()
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "none" if settings.is_production else "strict",
        "path": "/",
    }


def set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        token,
        max_age=get_settings().refresh_token_ttl_seconds,
        **_cookie_policy(),
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(REFRESH_TOKEN_COOKIE, **_cookie_policy())
