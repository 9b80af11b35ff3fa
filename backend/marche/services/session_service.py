# Overview: Service-layer operations for platform session tokens.

"""
Session tokens

A LINE token proves who the caller is once, at login. From then on the
mini-app sends our own bearer token so ordinary API calls never reach
the LINE API.

- The plaintext token (32 random bytes, hex) goes to the client only;
  the database keeps its SHA-256 digest.
- A session lives at most SESSION_ABSOLUTE_TIMEOUT and dies after
  SESSION_IDLE_TIMEOUT without use.
- The session carries the role the user had at login. If the account
  role changes (re-registration) the session is revoked on next use.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow
from . import record_store


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)

REVOKE_LOGOUT = "User logout"
REVOKE_IDLE = "Idle timeout"
REVOKE_DEACTIVATED = "User account deactivated"
REVOKE_ROLE_CHANGED = "Role changed"


@dataclass
class SessionContext:
    """What require_auth puts on flask.g for an authenticated request."""
    user: User
    session: SessionToken
    role: str


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # high-entropy random tokens; no salt or slow hash needed
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _live_session(token: str) -> SessionToken | None:
    return record_store.get(SessionToken, token_hash=hash_token(token), is_revoked=False)


def _revoke(session: SessionToken, reason: str) -> None:
    record_store.update(session, is_revoked=True, revoked_at=utcnow(), revoked_reason=reason)


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for the user's current role.

    Returns (session, plaintext_token).

    Raises ValueError for an unknown or deactivated user; the login route
    only calls this after resolving an active user, so reaching it is a bug.
    """
    user = record_store.get_by_id(User, user_id)
    if user is None:
        raise ValueError(f"User {user_id} not found")
    if not user.is_active:
        raise ValueError(f"User {user_id} is deactivated")

    token = generate_token()
    now = utcnow()
    session = record_store.create(
        SessionToken,
        user_id=user.id,
        role=user.role,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )
    return session, token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to a SessionContext, or None.

    Idle sessions, sessions of deactivated users and sessions whose role
    no longer matches the account are revoked on the way out. A valid
    session has its last_used_at bumped.
    """
    session = _live_session(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    reason = None
    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        reason = REVOKE_IDLE
    elif user is None or not user.is_active:
        reason = REVOKE_DEACTIVATED
    elif user.role != session.role:
        reason = REVOKE_ROLE_CHANGED

    if reason:
        _revoke(session, reason)
        return None

    record_store.update(session, last_used_at=now)
    return SessionContext(user=user, session=session, role=session.role)


def revoke_session(token: str, reason: str = REVOKE_LOGOUT) -> bool:
    """Revoke one session. False if the token is unknown or already revoked."""
    session = _live_session(token)
    if session is None:
        return False
    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str) -> int:
    """Revoke every live session of a user (re-registration). Returns the count."""
    sessions = record_store.list_records(SessionToken, user_id=user_id, is_revoked=False)
    now = utcnow()
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
    db.session.commit()
    return len(sessions)


def cleanup_expired_sessions(retention_days: int = 30) -> int:
    """Delete expired or revoked sessions created before the retention window."""
    now = utcnow()
    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
        SessionToken.created_at < now - timedelta(days=retention_days),
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
