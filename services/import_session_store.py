"""
In-memory storage for import wizard sessions.

Sessions expire after a TTL and are scoped to (workspace, user); a
lookup from another scope behaves like an unknown id.
Single-process only: sessions are not shared between workers.
"""

import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from config import settings
from exceptions import ImportSessionNotFoundError
from services.import_wizard import ImportSession, new_session

_sessions: dict[str, tuple[datetime, ImportSession]] = {}
_lock = threading.Lock()


def _ttl(ttl_minutes: Optional[int]) -> timedelta:
    return timedelta(minutes=ttl_minutes or settings.import_session_ttl_minutes)


def create_session(workspace_id: str, user_id: str, ttl_minutes: Optional[int] = None) -> ImportSession:
    """Create and store an empty session."""
    session = new_session(str(uuid.uuid4()), workspace_id, user_id)
    with _lock:
        _cleanup_expired()
        _sessions[session.session_id] = (datetime.now() + _ttl(ttl_minutes), session)
    return session


def _get_unlocked(session_id: str, workspace_id: str, user_id: str) -> ImportSession:
    entry = _sessions.get(session_id)
    if entry is None:
        raise ImportSessionNotFoundError(session_id)
    expires_at, session = entry
    if datetime.now() > expires_at:
        del _sessions[session_id]
        raise ImportSessionNotFoundError(session_id)
    if session.workspace_id != workspace_id or session.user_id != user_id:
        raise ImportSessionNotFoundError(session_id)
    return session


def get_session(session_id: str, workspace_id: str, user_id: str) -> ImportSession:
    """
    Retrieve a session.

    Raises:
        ImportSessionNotFoundError: Unknown, expired or out of scope
    """
    with _lock:
        return _get_unlocked(session_id, workspace_id, user_id)


def update_session(
    session_id: str,
    workspace_id: str,
    user_id: str,
    transition: Callable[[ImportSession], ImportSession],
    ttl_minutes: Optional[int] = None,
) -> ImportSession:
    """
    Apply a transition atomically and store the result (TTL refreshed).

    If the transition raises, the stored session is unchanged.
    """
    with _lock:
        session = _get_unlocked(session_id, workspace_id, user_id)
        updated = transition(session)
        _sessions[session_id] = (datetime.now() + _ttl(ttl_minutes), updated)
        return updated


def save_session(session: ImportSession, ttl_minutes: Optional[int] = None) -> bool:
    """
    Store a session computed outside the lock.

    Returns False (and stores nothing) if the session was closed meanwhile.
    """
    with _lock:
        if session.session_id not in _sessions:
            return False
        _sessions[session.session_id] = (datetime.now() + _ttl(ttl_minutes), session)
        return True


def delete_session(session_id: str, workspace_id: str, user_id: str) -> None:
    """
    Discard a session (wizard closed).

    A commit already running keeps going; its result is dropped.
    """
    with _lock:
        _get_unlocked(session_id, workspace_id, user_id)
        _sessions.pop(session_id, None)


def clear_sessions() -> None:
    """Drop every session."""
    with _lock:
        _sessions.clear()


def _cleanup_expired() -> None:
    """Remove all expired entries. Caller holds the lock."""
    now = datetime.now()
    expired = [k for k, (exp, _) in _sessions.items() if now > exp]
    for k in expired:
        del _sessions[k]
