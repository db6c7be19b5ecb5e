"""
Tests for the session controller (AuthService) and the credential store.

Run with: pytest tests/test_auth_service.py -v
"""

import pytest
from sqlalchemy import select

from app.core.errors import ApiError, ErrorKind
from app.core.security import verify_password
from app.models.user import User
from app.schemas.user import UserResponse
from app.services.auth_service import AuthService


async def _signup(db, username="alice", email="alice@x.com", password="pw123456", fullname="Alice Liddell"):
    user = await AuthService.signup(db, fullname, username, email, password)
    await db.commit()
    return user


# ============================================
# Signup
# ============================================

class TestSignup:
    """Account creation and the password hook."""

    @pytest.mark.asyncio
    async def test_signup_hashes_password_and_hides_it(self, db):
        """Test signup stores a bcrypt hash and never returns it."""
        user = await _signup(db)

        assert user.password != "pw123456"
        assert verify_password("pw123456", user.password)

        public = UserResponse.model_validate(user).model_dump(by_alias=True)
        assert "password" not in public
        assert "refresh_token" not in public and "refreshToken" not in public
        assert public["username"] == "alice"
        assert public["fullname"] == "Alice Liddell"

    @pytest.mark.asyncio
    async def test_signup_normalizes_identifiers(self, db):
        """Test username and email are trimmed and lowercased."""
        user = await _signup(db, username="  Alice ", email="ALICE@X.com")

        assert user.username == "alice"
        assert user.email == "alice@x.com"
        assert user.refresh_token is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "username,email",
        [
            ("ALICE", "other@x.com"),       # username collides
            ("bob", "Alice@X.COM"),         # email collides
            ("alice", "alice@x.com"),       # both collide
        ],
    )
    async def test_duplicate_username_or_email_conflicts(self, db, username, email):
        """Test a taken username or email is a conflict."""
        await _signup(db)

        with pytest.raises(ApiError) as exc_info:
            await AuthService.signup(db, "Someone", username, email, "pw123456")

        assert exc_info.value.kind is ErrorKind.CONFLICT
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["fullname", "username", "email", "password"])
    async def test_missing_field_is_validation_error(self, db, missing):
        """Test each required signup field is enforced."""
        fields = {"fullname": "A", "username": "a", "email": "a@x.com", "password": "pw123456"}
        fields[missing] = ""

        with pytest.raises(ApiError) as exc_info:
            await AuthService.signup(db, **fields)

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert exc_info.value.status_code == 400
        assert exc_info.value.errors == {"missing": [missing]}

    @pytest.mark.asyncio
    async def test_malformed_email_rejected(self, db):
        """Test an email without a domain is rejected."""
        with pytest.raises(ApiError) as exc_info:
            await AuthService.signup(db, "A", "a", "not-an-email", "pw123456")

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert exc_info.value.message == "Invalid email format"


# ============================================
# Login
# ============================================

class TestLogin:
    """Credential checks and refresh-token persistence."""

    @pytest.mark.asyncio
    async def test_login_issues_tokens_and_stores_refresh_token(self, db):
        """Test login returns both tokens and persists the refresh token."""
        user = await _signup(db)
        stored_hash = user.password

        result = await AuthService.login(db, "Alice", "pw123456")
        await db.commit()

        assert result.user.id == user.id
        assert result.access_token and result.refresh_token
        refreshed = await db.get(User, user.id)
        await db.refresh(refreshed)
        assert refreshed.refresh_token == result.refresh_token
        # Writing the refresh token must not touch the password hash
        assert refreshed.password == stored_hash

    @pytest.mark.asyncio
    async def test_unknown_user_and_wrong_password_look_the_same(self, db):
        """Test unknown user and wrong password share one message."""
        await _signup(db)

        with pytest.raises(ApiError) as unknown:
            await AuthService.login(db, "nobody", "pw123456")
        with pytest.raises(ApiError) as wrong:
            await AuthService.login(db, "alice", "wrong-password")

        assert unknown.value.kind is wrong.value.kind is ErrorKind.AUTH
        assert unknown.value.status_code == wrong.value.status_code == 401
        assert unknown.value.message == wrong.value.message

    @pytest.mark.asyncio
    async def test_split_login_errors_when_unification_disabled(self, db, monkeypatch):
        """Test login errors are distinct when unification is turned off."""
        from app.services import auth_service

        monkeypatch.setattr(auth_service.settings, "unify_login_errors", False)
        await _signup(db)

        with pytest.raises(ApiError) as unknown:
            await AuthService.login(db, "nobody", "pw123456")
        with pytest.raises(ApiError) as wrong:
            await AuthService.login(db, "alice", "wrong-password")

        assert unknown.value.kind is ErrorKind.NOT_FOUND
        assert wrong.value.kind is ErrorKind.AUTH
        assert wrong.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_credentials(self, db):
        """Test login without username or password is a validation error."""
        with pytest.raises(ApiError) as exc_info:
            await AuthService.login(db, "alice", None)
        assert exc_info.value.kind is ErrorKind.VALIDATION


# ============================================
# Refresh rotation
# ============================================

class TestRefresh:
    """Rotation, replay rejection and the compare-and-swap."""

    @pytest.mark.asyncio
    async def test_refresh_rotates_and_rejects_previous_token(self, db):
        """Test refresh rotates the token and refuses the old one."""
        await _signup(db)
        login = await AuthService.login(db, "alice", "pw123456")
        await db.commit()

        pair = await AuthService.refresh(db, login.refresh_token)
        await db.commit()

        assert pair.refresh_token != login.refresh_token
        with pytest.raises(ApiError) as exc_info:
            await AuthService.refresh(db, login.refresh_token)
        assert exc_info.value.kind is ErrorKind.AUTH
        assert "expired or used" in exc_info.value.message

        # The rotated token keeps working
        again = await AuthService.refresh(db, pair.refresh_token)
        assert again.access_token

    @pytest.mark.asyncio
    async def test_refresh_without_token(self, db):
        """Test refresh without a token is unauthorized."""
        with pytest.raises(ApiError) as exc_info:
            await AuthService.refresh(db, None)
        assert exc_info.value.kind is ErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_refresh_with_access_token_is_invalid(self, db):
        """Test an access token cannot be used to refresh."""
        await _signup(db)
        login = await AuthService.login(db, "alice", "pw123456")

        with pytest.raises(ApiError) as exc_info:
            await AuthService.refresh(db, login.access_token)
        assert exc_info.value.kind is ErrorKind.TOKEN_INVALID

    @pytest.mark.asyncio
    async def test_refresh_for_deleted_user(self, db):
        """Test refresh fails once the user is gone."""
        await _signup(db)
        login = await AuthService.login(db, "alice", "pw123456")
        await AuthService.delete_account(db, login.user, "pw123456")
        await db.commit()

        with pytest.raises(ApiError) as exc_info:
            await AuthService.refresh(db, login.refresh_token)
        assert exc_info.value.kind is ErrorKind.AUTH
        assert exc_info.value.message == "Invalid refresh token"

    @pytest.mark.asyncio
    async def test_concurrent_refresh_loses_the_race(self, session_factory):
        """Test only one of two concurrent refreshes wins."""
        async with session_factory() as setup:
            await _signup(setup)
            login = await AuthService.login(setup, "alice", "pw123456")
            await setup.commit()

        async with session_factory() as first, session_factory() as second:
            # Both requests have read the same, still-current token
            stale = await second.get(User, login.user.id)
            assert stale.refresh_token == login.refresh_token

            await AuthService.refresh(first, login.refresh_token)
            await first.commit()

            with pytest.raises(ApiError) as exc_info:
                await AuthService.refresh(second, login.refresh_token)
            assert exc_info.value.kind is ErrorKind.AUTH
            assert "expired or used" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_compare_and_swap_requires_expected_value(self, db):
        """Test the token swap only applies over the expected value."""
        user = await _signup(db)
        await AuthService.store_refresh_token(db, user.id, "token-a")

        assert await AuthService.rotate_refresh_token(db, user.id, "token-a", "token-b") is True
        assert await AuthService.rotate_refresh_token(db, user.id, "token-a", "token-c") is False

        row = await db.execute(select(User.refresh_token).where(User.id == user.id))
        assert row.scalar_one() == "token-b"


# ============================================
# Logout / Profile / Deletion
# ============================================

class TestAccountLifecycle:
    """Logout, profile updates and account deletion."""

    @pytest.mark.asyncio
    async def test_logout_revokes_refresh_token(self, db):
        """Test logout clears the stored refresh token."""
        await _signup(db)
        login = await AuthService.login(db, "alice", "pw123456")

        await AuthService.logout(db, login.user)
        await db.commit()

        with pytest.raises(ApiError) as exc_info:
            await AuthService.refresh(db, login.refresh_token)
        assert exc_info.value.kind is ErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_update_with_no_fields_leaves_record_unchanged(self, db):
        """Test an empty update is a no-op."""
        user = await _signup(db)
        before = (user.username, user.full_name, user.password)

        with pytest.raises(ApiError) as exc_info:
            await AuthService.update_profile(db, user, current_password="pw123456")

        assert exc_info.value.kind is ErrorKind.VALIDATION
        await db.refresh(user)
        assert (user.username, user.full_name, user.password) == before

    @pytest.mark.asyncio
    async def test_update_name_and_username(self, db):
        """Test fullname and username can be updated together."""
        user = await _signup(db)
        stored_hash = user.password

        updated = await AuthService.update_profile(db, user, new_fullname=" Alice L. ", new_username="AliceL")

        assert updated.full_name == "Alice L."
        assert updated.username == "alicel"
        assert updated.password == stored_hash

    @pytest.mark.asyncio
    async def test_change_password_rehashes(self, db):
        """Test a password change stores a new hash."""
        user = await _signup(db)

        await AuthService.update_profile(db, user, current_password="pw123456", new_password="new-secret")
        await db.commit()

        assert verify_password("new-secret", user.password)
        assert not verify_password("pw123456", user.password)
        login = await AuthService.login(db, "alice", "new-secret")
        assert login.access_token

    @pytest.mark.asyncio
    async def test_change_password_requires_current_password(self, db):
        """Test the current password must match to change it."""
        user = await _signup(db)

        with pytest.raises(ApiError) as missing:
            await AuthService.update_profile(db, user, new_password="new-secret")
        with pytest.raises(ApiError) as wrong:
            await AuthService.update_profile(db, user, current_password="nope", new_password="new-secret")

        assert missing.value.kind is ErrorKind.VALIDATION
        assert wrong.value.kind is ErrorKind.AUTH
        assert verify_password("pw123456", user.password)

    @pytest.mark.asyncio
    async def test_username_taken_by_another_user(self, db):
        """Test renaming to another user's username conflicts."""
        alice = await _signup(db)
        await _signup(db, username="bob", email="bob@x.com")

        with pytest.raises(ApiError) as exc_info:
            await AuthService.update_profile(db, alice, new_username="BOB")
        assert exc_info.value.kind is ErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_keeping_own_username_is_allowed(self, db):
        """Test resubmitting one's own username is allowed."""
        alice = await _signup(db)

        updated = await AuthService.update_profile(db, alice, new_username="alice", new_fullname="Alice")
        assert updated.username == "alice"

    @pytest.mark.asyncio
    async def test_delete_with_wrong_password_keeps_user(self, db):
        """Test a wrong password does not delete the account."""
        user = await _signup(db)

        with pytest.raises(ApiError) as exc_info:
            await AuthService.delete_account(db, user, "wrong-password")

        assert exc_info.value.kind is ErrorKind.AUTH
        assert await AuthService.get_user_by_username(db, "alice") is not None

    @pytest.mark.asyncio
    async def test_delete_requires_password(self, db):
        """Test account deletion needs a password."""
        user = await _signup(db)

        with pytest.raises(ApiError) as exc_info:
            await AuthService.delete_account(db, user, None)
        assert exc_info.value.kind is ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_delete_removes_user(self, db):
        """Test account deletion removes the user row."""
        user = await _signup(db)

        confirmation = await AuthService.delete_account(db, user, "pw123456")
        await db.commit()

        assert confirmation["deleted"] is True
        assert await AuthService.get_user_by_username(db, "alice") is None
