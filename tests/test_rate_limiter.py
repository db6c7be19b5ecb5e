"""Tests for the in-memory sliding-window rate limiter."""

import pytest

from app.core import rate_limiter as rate_limiter_module
from app.core.errors import ApiError, ErrorKind
from app.core.rate_limiter import RateLimiter, check_rate_limit, rate_limiter


@pytest.fixture
def clock(monkeypatch):
    """Controllable time.time() for the limiter module."""
    now = [1000.0]
    monkeypatch.setattr(rate_limiter_module.time, "time", lambda: now[0])
    return now


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_allows_up_to_the_limit(self):
        """Test the sixth username attempt in a window is refused."""
        limiter = RateLimiter()

        for _ in range(5):
            allowed, retry_after = limiter.is_allowed("login_username", "alice")
            assert allowed and retry_after == 0

        allowed, retry_after = limiter.is_allowed("login_username", "alice")
        assert not allowed
        assert 0 < retry_after <= 901

    def test_identifiers_are_independent(self):
        """Test one exhausted username does not limit another."""
        limiter = RateLimiter()
        for _ in range(5):
            limiter.is_allowed("login_username", "alice")

        assert limiter.is_allowed("login_username", "bob")[0]
        assert not limiter.is_allowed("login_username", "alice")[0]

    def test_window_expiry(self, clock):
        """Test attempts are allowed again once the window has passed."""
        limiter = RateLimiter()
        for _ in range(5):
            limiter.is_allowed("login_username", "alice")
        assert not limiter.is_allowed("login_username", "alice")[0]

        clock[0] += 901
        assert limiter.is_allowed("login_username", "alice")[0]

    def test_expired_keys_are_dropped(self, clock):
        """Test the request map shrinks once every window has expired."""
        limiter = RateLimiter()
        for i in range(20):
            limiter.is_allowed("login_ip", f"10.0.0.{i}")
        assert len(limiter._requests) == 20

        clock[0] += 901
        limiter.is_allowed("login_ip", "10.0.1.1")

        assert list(limiter._requests) == ["login_ip:10.0.1.1"]

    def test_cleanup_drops_emptied_key(self, clock):
        """Test a key whose timestamps all expired is removed, not left empty."""
        limiter = RateLimiter()
        limiter.is_allowed("login_username", "alice")

        clock[0] += 30
        limiter._cleanup_old_requests("login_username:alice", 10)

        assert "login_username:alice" not in limiter._requests

    def test_reset(self):
        """Test reset clears a single key's window."""
        limiter = RateLimiter()
        for _ in range(5):
            limiter.is_allowed("login_username", "alice")

        limiter.reset("login_username", "alice")
        assert limiter.is_allowed("login_username", "alice")[0]

    def test_unknown_limit_type_is_not_limited(self):
        """Test unknown limit types are let through."""
        assert RateLimiter().is_allowed("nope", "x") == (True, 0)

    def test_check_rate_limit_raises_with_retry_after(self):
        """Test check_rate_limit raises RATE_LIMITED with a Retry-After header."""
        for _ in range(30):
            check_rate_limit("refresh_ip", "10.0.0.1")

        with pytest.raises(ApiError) as exc_info:
            check_rate_limit("refresh_ip", "10.0.0.1")

        assert exc_info.value.kind is ErrorKind.RATE_LIMITED
        assert exc_info.value.status_code == 429
        assert int(exc_info.value.headers["Retry-After"]) > 0
        rate_limiter.clear()
