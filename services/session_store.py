"""
In-memory storage for import sessions.
Sessions expire after a period of inactivity (TTL refreshed on access).
Single-process only; sessions are lost on restart.
"""
from datetime import datetime, timedelta
from typing import Optional
import structlog

from config import settings
from services.import_session import ImportSession
from exceptions import ImportSessionNotFoundError

logger = structlog.get_logger(__name__)

_sessions: dict[str, tuple[datetime, ImportSession]] = {}


def _expiry(ttl_minutes: Optional[int] = None) -> datetime:
    return datetime.now() + timedelta(minutes=ttl_minutes or settings.session_ttl_minutes)


def store_session(session: ImportSession, ttl_minutes: Optional[int] = None) -> str:
    """Store a session under its own id, return the id."""
    _sessions[session.id] = (_expiry(ttl_minutes), session)
    _cleanup_expired()
    return session.id


def get_session(session_id: str) -> ImportSession:
    """
    Retrieve a live session and refresh its TTL.

    Raises:
        ImportSessionNotFoundError: Unknown or expired session
    """
    entry = _sessions.get(session_id)
    if entry is None:
        raise ImportSessionNotFoundError(session_id)

    expires_at, session = entry
    if datetime.now() > expires_at:
        del _sessions[session_id]
        logger.info("import_session_expired", session_id=session_id)
        raise ImportSessionNotFoundError(session_id)

    _sessions[session_id] = (_expiry(), session)
    return session


def delete_session(session_id: str) -> None:
    """Remove a session after import or cancel."""
    _sessions.pop(session_id, None)


def clear_sessions() -> None:
    """Drop every session."""
    _sessions.clear()


def _cleanup_expired() -> None:
    """Remove all expired entries."""
    now = datetime.now()
    expired = [k for k, (exp, _) in _sessions.items() if now > exp]
    for k in expired:
        del _sessions[k]
    if expired:
        logger.debug("import_sessions_cleaned", expired=len(expired))
