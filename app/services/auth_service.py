"""Authentication service: accounts, JWT sessions and refresh-token rotation"""

import logging
import re
import secrets
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import (
    ApiError,
    auth_error,
    conflict_error,
    internal_error,
    not_found_error,
    validation_error,
)
from app.core.security import FAKE_HASHED_PASSWORD, verify_password
from app.models.user import User
from app.services.token_service import get_token_service

logger = logging.getLogger(__name__)
settings = get_settings()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

INVALID_CREDENTIALS = "Invalid username or password"
REFRESH_EXPIRED_OR_USED = "Refresh token is expired or used"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class LoginResult:
    user: User
    access_token: str
    refresh_token: str


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def _normalize(value: str) -> str:
    return value.strip().lower()


def _same_token(presented: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


@contextmanager
def _store_guard(action: str):
    """Translate persistence failures into ApiError kinds."""
    try:
        yield
    except ApiError:
        raise
    except IntegrityError as e:
        logger.warning(f"Integrity error while trying to {action}: {e.orig}")
        raise conflict_error("User already exists with this email or username")
    except SQLAlchemyError as e:
        logger.error(f"Database error while trying to {action}: {e}")
        raise internal_error(
            f"Failed to {action}",
            errors=None if settings.is_production else str(e),
        )


class AuthService:
    """Session controller: signup, login, refresh, logout, profile, deletion."""

    # ─── User Lookup ─────────────────────────────
    @staticmethod
    async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.username == _normalize(username)))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == _normalize(email)))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
        return await db.get(User, user_id)

    # ─── Refresh Token Persistence ──────────────
    # Plain UPDATE statements: no mapper events fire, so the password hook
    # never runs on these writes.
    @staticmethod
    async def store_refresh_token(db: AsyncSession, user_id: str, token: Optional[str]) -> None:
        await db.execute(
            update(User).where(User.id == user_id).values(refresh_token=token)
        )

    @staticmethod
    async def rotate_refresh_token(db: AsyncSession, user_id: str, expected: str, new: str) -> bool:
        """Compare-and-swap: store ``new`` only if ``expected`` is still current."""
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.refresh_token == expected)
            .values(refresh_token=new)
        )
        return result.rowcount == 1

    # ─── Registration ───────────────────────────
    @staticmethod
    async def signup(
        db: AsyncSession,
        fullname: Optional[str],
        username: Optional[str],
        email: Optional[str],
        password: Optional[str],
    ) -> User:
        fields = {"fullname": fullname, "username": username, "email": email, "password": password}
        missing = [name for name, value in fields.items() if not _present(value)]
        if missing:
            raise validation_error(
                "Fullname or Username or Email or Password is missing",
                errors={"missing": missing},
            )

        email = _normalize(email)
        username = _normalize(username)
        if not EMAIL_PATTERN.match(email):
            raise validation_error("Invalid email format")

        with _store_guard("sign up user"):
            result = await db.execute(
                select(User.id).where(or_(User.username == username, User.email == email))
            )
            if result.first() is not None:
                raise conflict_error("User already exists with this email or username")

            user = User(
                full_name=fullname,
                username=username,
                email=email,
                password=password,  # hashed by the before_insert hook
            )
            db.add(user)
            await db.flush()
            await db.refresh(user)

        logger.info(f"User signed up: {user.username}")
        return user

    # ─── Login ──────────────────────────────────
    @staticmethod
    async def login(db: AsyncSession, username: Optional[str], password: Optional[str]) -> LoginResult:
        if not _present(username) or not password:
            raise validation_error("Username or Password is missing")

        with _store_guard("log in user"):
            user = await AuthService.get_user_by_username(db, username)

            if settings.unify_login_errors:
                # Verify against a dummy hash for unknown users so timing matches
                password_correct = verify_password(password, user.password if user else FAKE_HASHED_PASSWORD)
                if not user or not password_correct:
                    raise auth_error(INVALID_CREDENTIALS)
            else:
                if not user:
                    raise not_found_error("User doesn't exist with this username")
                if not verify_password(password, user.password):
                    raise auth_error("Incorrect Password", status_code=400)

            tokens = get_token_service()
            access_token = tokens.issue_access_token(user.id)
            refresh_token = tokens.issue_refresh_token(user.id)
            await AuthService.store_refresh_token(db, user.id, refresh_token)

        logger.info(f"User logged in: {user.username}")
        return LoginResult(user=user, access_token=access_token, refresh_token=refresh_token)

    # ─── Refresh Access Token (Rotation) ────────
    @staticmethod
    async def refresh(db: AsyncSession, incoming_token: Optional[str]) -> TokenPair:
        if not incoming_token:
            raise auth_error("Unauthorized request")

        tokens = get_token_service()
        payload = tokens.decode_refresh_token(incoming_token)

        with _store_guard("refresh access token"):
            user = await AuthService.get_user_by_id(db, payload["sub"])
            if not user:
                raise auth_error("Invalid refresh token")

            if not _same_token(incoming_token, user.refresh_token):
                logger.warning(f"Rejected stale refresh token for user {user.id}")
                raise auth_error(REFRESH_EXPIRED_OR_USED)

            pair = TokenPair(
                access_token=tokens.issue_access_token(user.id),
                refresh_token=tokens.issue_refresh_token(user.id),
            )
            # Another request may have rotated since we read the user
            if not await AuthService.rotate_refresh_token(db, user.id, incoming_token, pair.refresh_token):
                logger.warning(f"Concurrent refresh lost the rotation race for user {user.id}")
                raise auth_error(REFRESH_EXPIRED_OR_USED)

        logger.debug(f"Rotated refresh token for user {user.id}")
        return pair

    # ─── Logout ─────────────────────────────────
    @staticmethod
    async def logout(db: AsyncSession, user: User) -> None:
        with _store_guard("log out user"):
            await AuthService.store_refresh_token(db, user.id, None)
        logger.info(f"User logged out: {user.username}")

    @staticmethod
    def get_current_user(user: User) -> User:
        return user

    # ─── Update Profile ─────────────────────────
    @staticmethod
    async def update_profile(
        db: AsyncSession,
        user: User,
        new_fullname: Optional[str] = None,
        new_username: Optional[str] = None,
        current_password: Optional[str] = None,
        new_password: Optional[str] = None,
    ) -> User:
        if not (_present(new_fullname) or _present(new_username) or new_password):
            raise validation_error("Provide newFullname, newUsername or newPassword to update")

        if new_password:
            if not current_password:
                raise validation_error("Current password is required to set a new password")
            if not verify_password(current_password, user.password):
                raise auth_error("Current password is incorrect", status_code=400)

        with _store_guard("update profile"):
            if _present(new_username):
                username = _normalize(new_username)
                if username != user.username:
                    existing = await AuthService.get_user_by_username(db, username)
                    if existing and existing.id != user.id:
                        raise conflict_error("Username is already taken")
                user.username = username

            if _present(new_fullname):
                user.full_name = new_fullname
            if new_password:
                user.password = new_password  # re-hashed by the before_update hook

            await db.flush()
            await db.refresh(user)

        logger.info(f"Profile updated for user {user.id}")
        return user

    # ─── Delete Account ─────────────────────────
    @staticmethod
    async def delete_account(db: AsyncSession, user: User, current_password: Optional[str]) -> dict:
        if not current_password:
            raise validation_error("Current password is required to delete the account")
        if not verify_password(current_password, user.password):
            raise auth_error("Incorrect Password", status_code=400)

        with _store_guard("delete account"):
            await db.delete(user)
            await db.flush()

        logger.info(f"Account deleted: {user.username}")
        return {"id": user.id, "username": user.username, "deleted": True}
