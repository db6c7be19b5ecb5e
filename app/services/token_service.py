"""JWT issuing and verification for access and refresh tokens."""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from app.core.config import Settings, get_settings
from app.core.errors import ApiError, ErrorKind

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Mints and verifies signed, time-bounded tokens.

    Access and refresh tokens are signed with different secrets, so a leaked
    access secret cannot forge refresh tokens and vice versa. ``clock`` is an
    attribute so tests can move time forward or backward.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Callable[[], datetime] = _utcnow):
        self.settings = settings or get_settings()
        self.clock = clock

    # ─── Minting ────────────────────────────────
    def _create_jwt(self, user_id: str, token_type: str, secret: str, expires_delta: timedelta) -> str:
        now = self.clock()
        payload = {
            "sub": str(user_id),
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + expires_delta).timestamp()),
            "type": token_type,
        }
        return jwt.encode(payload, secret, algorithm=self.settings.jwt_algorithm)

    def issue_access_token(self, user_id: str) -> str:
        return self._create_jwt(
            user_id,
            ACCESS,
            self.settings.access_token_secret,
            timedelta(minutes=self.settings.access_token_expire_minutes),
        )

    def issue_refresh_token(self, user_id: str) -> str:
        return self._create_jwt(
            user_id,
            REFRESH,
            self.settings.refresh_token_secret,
            timedelta(days=self.settings.refresh_token_expire_days),
        )

    # ─── Verification ───────────────────────────
    def _decode(self, token: str, token_type: str, secret: str) -> Dict[str, Any]:
        label = "Access" if token_type == ACCESS else "Refresh"
        try:
            payload = jwt.decode(token, secret, algorithms=[self.settings.jwt_algorithm])
        except ExpiredSignatureError:
            raise ApiError(ErrorKind.TOKEN_EXPIRED, f"{label} token expired")
        except JWTError as e:
            logger.debug(f"{label} token rejected: {e}")
            raise ApiError(ErrorKind.TOKEN_INVALID, f"Invalid {label.lower()} token")

        if payload.get("type") != token_type or not payload.get("sub"):
            raise ApiError(ErrorKind.TOKEN_INVALID, f"Invalid {label.lower()} token")

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or self.clock().timestamp() >= exp:
            raise ApiError(ErrorKind.TOKEN_EXPIRED, f"{label} token expired")

        return payload

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        return self._decode(token, ACCESS, self.settings.access_token_secret)

    def decode_refresh_token(self, token: str) -> Dict[str, Any]:
        return self._decode(token, REFRESH, self.settings.refresh_token_secret)


# Singleton instance
_token_service: Optional[TokenService] = None


def get_token_service() -> TokenService:
    """Get or create the token service singleton."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService()
    return _token_service
