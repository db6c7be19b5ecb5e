"""Python client for the VoiceAuth API."""

from app.client.session import (
    FileSessionStore,
    MemorySessionStore,
    Notifier,
    SessionManager,
    SessionStore,
)

__all__ = [
    "FileSessionStore",
    "MemorySessionStore",
    "Notifier",
    "SessionManager",
    "SessionStore",
]
