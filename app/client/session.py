"""Client-side session manager for the VoiceAuth API.

Keeps the access token and user profile in memory and in a persistent
store, refreshes the access token silently when a protected call comes back
401, and guards views that need (or must not have) an authenticated user.
One instance is created at application start and shared by every view.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

IS_AUTHENTICATED_KEY = "isAuthenticated"
ACCESS_TOKEN_KEY = "accessToken"
USER_KEY = "user"
REFRESH_TOKEN_KEY = "refreshToken"

# Name of the HTTP-only cookie the API sets on login and refresh
REFRESH_COOKIE = "refreshToken"

LANDING_VIEW = "/"
LOGIN_VIEW = "/auth"
DASHBOARD_VIEW = "/admin-dashboard"

PROTECTED_VIEWS = frozenset({"/dashboard", "/admin-dashboard", "/user-dashboard"})
PUBLIC_ONLY_VIEWS = frozenset({LOGIN_VIEW})


# ─────────────────────────────────────────────
# Persistent storage
# ─────────────────────────────────────────────

class SessionStore:
    """Key/value persistence for auth state (``localStorage`` equivalent)."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileSessionStore(SessionStore):
    """JSON file on disk; survives process restarts."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data))

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


# ─────────────────────────────────────────────
# Notifications
# ─────────────────────────────────────────────

@dataclass
class Notice:
    level: str
    message: str


class Notifier:
    """Collects user-facing notices (toast equivalent) and logs them."""

    def __init__(self):
        self.notices: List[Notice] = []

    def _push(self, level: str, message: str) -> None:
        self.notices.append(Notice(level, message))
        logger.log(logging.WARNING if level == "error" else logging.INFO, f"[{level}] {message}")

    def success(self, message: str) -> None:
        self._push("success", message)

    def error(self, message: str) -> None:
        self._push("error", message)

    def info(self, message: str) -> None:
        self._push("info", message)

    def last(self, level: Optional[str] = None) -> Optional[Notice]:
        for notice in reversed(self.notices):
            if level is None or notice.level == level:
                return notice
        return None


# ─────────────────────────────────────────────
# Session manager
# ─────────────────────────────────────────────

def _json(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class SessionManager:
    """Single source of truth for the client's authentication state."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        api_prefix: str = "/voice-web-app/api",
        store: Optional[SessionStore] = None,
        notifier: Optional[Notifier] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.http = http or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        self.api_prefix = api_prefix.rstrip("/")
        self.store = store or MemorySessionStore()
        self.notifier = notifier or Notifier()

        self.user: Optional[Dict[str, Any]] = None
        self.access_token: Optional[str] = None
        self.is_authenticated = False
        self.loading = True
        self.location = LANDING_VIEW

        self._refresh_lock = asyncio.Lock()

        # The cookie jar dies with the process; the store does not
        saved_refresh = self.store.get(REFRESH_TOKEN_KEY)
        if saved_refresh:
            self._set_refresh_cookie(saved_refresh)

    def _url(self, path: str) -> str:
        return f"{self.api_prefix}{path}"

    def _auth_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        token = token or self.access_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def aclose(self) -> None:
        await self.http.aclose()

    # ─── State helpers ──────────────────────────
    def _set_refresh_cookie(self, token: Optional[str]) -> None:
        # Keep exactly one refresh cookie in the jar, whichever domain set it
        self.http.cookies.delete(REFRESH_COOKIE)
        if token:
            self.http.cookies.set(REFRESH_COOKIE, token)

    def _remember_refresh_cookie(self, response: httpx.Response) -> None:
        token = response.cookies.get(REFRESH_COOKIE)
        if not token:
            return
        self._set_refresh_cookie(token)
        self.store.set(REFRESH_TOKEN_KEY, token)

    def _adopt(self, user: Dict[str, Any], access_token: Optional[str] = None) -> None:
        if access_token:
            self.access_token = access_token
            self.store.set(ACCESS_TOKEN_KEY, access_token)
        self.user = user
        self.is_authenticated = True
        self.store.set(IS_AUTHENTICATED_KEY, "true")
        self.store.set(USER_KEY, json.dumps(user))

    def clear_auth_data(self, show_message: bool = True) -> None:
        for key in (IS_AUTHENTICATED_KEY, ACCESS_TOKEN_KEY, USER_KEY, REFRESH_TOKEN_KEY):
            self.store.remove(key)
        self._set_refresh_cookie(None)
        self.user = None
        self.access_token = None
        self.is_authenticated = False
        if show_message:
            self.notifier.info("Authentication cleared")

    # ─── Boot ───────────────────────────────────
    async def boot(self) -> None:
        """Restore the session persisted by a previous run, if still valid."""
        self.loading = True
        try:
            is_auth = self.store.get(IS_AUTHENTICATED_KEY) == "true"
            token = self.store.get(ACCESS_TOKEN_KEY)
            if not (is_auth and token):
                self.clear_auth_data(show_message=False)
                return

            self.access_token = token
            user = await self._get_current_user(token)
            if user is not None:
                self._adopt(user)
                self.notifier.success(f"Welcome back, {user.get('fullname') or user.get('username')}!")
                return

            if not await self.refresh(failed_token=token):
                self.notifier.error("Session expired. Please login again")
                self.clear_auth_data()
                return

            user = await self._get_current_user(self.access_token)
            if user is not None:
                self._adopt(user)
                logger.debug("Session restored after refresh")
            else:
                self.notifier.error("Failed to fetch user data after refresh")
                self.clear_auth_data()
        except httpx.HTTPError as e:
            logger.error(f"Auth check error: {e}")
            self.notifier.error(f"Authentication failed: {e}")
            self.clear_auth_data()
        finally:
            self.loading = False

    async def _get_current_user(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """The profile for ``token``, or None unless the server returned one."""
        response = await self.http.get(self._url("/users/current-user"), headers=self._auth_headers(token))
        if response.status_code != 200:
            return None
        user = _json(response).get("data")
        return user if isinstance(user, dict) else None

    # ─── Login / Logout / Update ────────────────
    def login(self, user: Optional[Dict[str, Any]], access_token: Optional[str]) -> bool:
        """Adopt a freshly authenticated user; reports problems instead of raising."""
        if not user:
            self.notifier.error("Login failed: User data is missing")
            return False
        if not access_token:
            self.notifier.error("Login failed: Access token is missing")
            return False

        user = dict(user)
        if not user.get("fullname"):
            user["fullname"] = user.get("username") or "User"

        self._adopt(user, access_token)
        self.notifier.success(f"Welcome back, {user['fullname']}!")
        return True

    async def logout(self) -> None:
        """Best-effort server logout, then always clear local state."""
        try:
            if self.access_token:
                response = await self.http.post(self._url("/users/logout"), headers=self._auth_headers())
                if response.status_code != 200:
                    logger.info(f"Logout failed on server: {_json(response).get('message')}")
        except httpx.HTTPError as e:
            logger.warning(f"Logout error: {e}")
        finally:
            self.clear_auth_data(show_message=False)
            self.notifier.success("Logged out successfully")
            self.location = LANDING_VIEW

    def update_user(self, user: Dict[str, Any]) -> None:
        self.user = user
        self.store.set(USER_KEY, json.dumps(user))
        self.notifier.info("User profile updated")

    # ─── Route guarding ─────────────────────────
    def guard(self, view: str, *, protected: bool = False, public_only: bool = False) -> str:
        """Return the view to actually render for ``view``."""
        if protected and not self.is_authenticated:
            self.notifier.info("Please login to access this page")
            return LOGIN_VIEW
        if public_only and self.is_authenticated:
            return DASHBOARD_VIEW
        return view

    def navigate(self, view: str) -> str:
        self.location = self.guard(
            view,
            protected=view in PROTECTED_VIEWS,
            public_only=view in PUBLIC_ONLY_VIEWS,
        )
        return self.location

    # ─── Silent refresh ─────────────────────────
    async def refresh(self, failed_token: Optional[str] = None) -> bool:
        """
        Obtain a new access token using the refresh cookie.

        Concurrent callers share one refresh: a caller whose ``failed_token``
        has already been replaced by another refresh skips the HTTP call.
        """
        async with self._refresh_lock:
            if failed_token and self.access_token and self.access_token != failed_token:
                return True

            try:
                response = await self.http.post(self._url("/users/refresh-token"))
            except httpx.HTTPError as e:
                logger.warning(f"Refresh request failed: {e}")
                return False

            if response.status_code != 200:
                logger.info(f"Refresh rejected: {response.status_code} {_json(response).get('code')}")
                return False

            token = (_json(response).get("data") or {}).get("accessToken")
            if not token:
                return False
            self.access_token = token
            self.store.set(ACCESS_TOKEN_KEY, token)
            self._remember_refresh_cookie(response)
            return True

    async def authorized_request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send a protected request; on 401 refresh once and retry once,
        and if that still fails, drop the session.
        """
        token_used = self.access_token
        headers = {**kwargs.pop("headers", {}), **self._auth_headers(token_used)}
        response = await self.http.request(method, self._url(path), headers=headers, **kwargs)
        if response.status_code != 401:
            return response

        if await self.refresh(failed_token=token_used):
            headers.update(self._auth_headers())
            response = await self.http.request(method, self._url(path), headers=headers, **kwargs)
            if response.status_code != 401:
                return response

        self.notifier.error("Session expired. Please login again")
        self.clear_auth_data(show_message=False)
        self.location = LANDING_VIEW
        return response

    # ─── API calls used by the views ────────────
    async def signup(self, fullname: str, username: str, email: str, password: str) -> Optional[Dict[str, Any]]:
        response = await self.http.post(
            self._url("/users/signup"),
            json={"fullname": fullname, "username": username, "email": email, "password": password},
        )
        body = _json(response)
        if response.status_code != 201:
            self.notifier.error(body.get("message") or "Signup failed")
            return None
        self.notifier.success("Account created. Please login")
        return body.get("data")

    async def login_with_password(self, username: str, password: str) -> bool:
        response = await self.http.post(
            self._url("/users/login"),
            json={"username": username, "password": password},
        )
        body = _json(response)
        if response.status_code != 200:
            self.notifier.error(body.get("message") or "Login failed")
            return False
        data = body.get("data") or {}
        adopted = self.login(data.get("user"), data.get("accessToken"))
        if adopted:
            self._remember_refresh_cookie(response)
        return adopted

    async def fetch_current_user(self) -> Optional[Dict[str, Any]]:
        response = await self.authorized_request("GET", "/users/current-user")
        if response.status_code != 200:
            return None
        return _json(response).get("data")

    async def update_profile(self, **fields: Optional[str]) -> Optional[Dict[str, Any]]:
        """Fields: new_fullname, new_username, current_password, new_password."""
        names = {
            "new_fullname": "newFullname",
            "new_username": "newUsername",
            "current_password": "currentPassword",
            "new_password": "newPassword",
        }
        payload = {names[k]: v for k, v in fields.items() if v is not None}
        response = await self.authorized_request("PUT", "/users/update-profile", json=payload)
        body = _json(response)
        if response.status_code != 200:
            if self.is_authenticated:
                self.notifier.error(body.get("message") or "Profile update failed")
            return None
        self.update_user(body["data"])
        return body["data"]

    async def delete_account(self, current_password: str) -> bool:
        response = await self.authorized_request(
            "DELETE", "/users/delete-account", json={"currentPassword": current_password}
        )
        if response.status_code != 200:
            if self.is_authenticated:
                self.notifier.error(_json(response).get("message") or "Account deletion failed")
            return False
        self.clear_auth_data(show_message=False)
        self.notifier.success("Account deleted")
        self.location = LANDING_VIEW
        return True

    async def upload_audio(
        self,
        data: bytes,
        filename: str,
        content_type: str = "audio/webm",
        owner: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        form = {"ownerName": owner} if owner else None
        response = await self.authorized_request(
            "POST",
            "/audio/upload-audio",
            files={"audio": (filename, data, content_type)},
            data=form,
        )
        body = _json(response)
        if response.status_code != 201:
            self.notifier.error(body.get("message") or "Upload failed")
            return None
        return body.get("data")

    async def list_audio(self) -> List[Dict[str, Any]]:
        response = await self.authorized_request("GET", "/audio/list-audio")
        if response.status_code != 200:
            return []
        return (_json(response).get("data") or {}).get("files", [])
