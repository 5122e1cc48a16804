"""Console sessions and login throttling.

A browser holds only the opaque ``console_session`` cookie; the principal
behind it lives here, in process memory. Restarting the service signs
everyone out.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from catalogue_console.auth.api_key import Principal

log = logging.getLogger(__name__)


@dataclass
class Session:
    session_id: str
    principal: "Principal"
    created_at: datetime
    expires_at: datetime

    @property
    def key_id(self) -> str:
        return self.principal.key_id

    def expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at


def _key_still_active(session: Session) -> bool:
    """API key sessions end when the key is revoked or removed.

    GitHub sessions have no key behind them and only expire.
    """
    from catalogue_console.auth.api_key import GITHUB_KEY_PREFIX, get_api_key_store

    if session.key_id.startswith(GITHUB_KEY_PREFIX):
        return True
    store = get_api_key_store()
    store.reload_if_stale()
    return store.is_active(session.key_id)


class SessionStore:
    """In-memory session table guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def create(self, principal: "Principal", ttl_seconds: int) -> Session:
        now = datetime.now(timezone.utc)
        session = Session(
            session_id=secrets.token_urlsafe(32),
            principal=principal,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        async with self._lock:
            self._sessions[session.session_id] = session
        log.debug(f"Opened session for {principal.key_id}")
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        """The live session for ``session_id``; dead sessions are dropped on sight."""
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.expired():
                reason = "expired"
            elif not _key_still_active(session):
                reason = f"key {session.key_id} revoked"
            else:
                return session
            del self._sessions[session_id]

        log.info(f"Session for {session.key_id} ended: {reason}")
        return None

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def cleanup_expired(self) -> int:
        now = datetime.now(timezone.utc)
        async with self._lock:
            stale = [sid for sid, s in self._sessions.items() if s.expired(now)]
            for sid in stale:
                del self._sessions[sid]
        return len(stale)


class LoginRateLimiter:
    """Locks a client IP out after ``max_attempts`` failed logins.

    Failures are counted within ``window_seconds`` of the first one; reaching
    the limit locks the IP for another ``window_seconds``. A successful login
    clears the count.
    """

    def __init__(self, max_attempts: int = 5, window_seconds: int = 900) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        # ip -> (first failure, failure count, locked until)
        self._failures: dict[str, tuple[float, int, float]] = {}
        self._lock = asyncio.Lock()

    def _current(self, ip: str, now: float) -> tuple[float, int, float]:
        first, count, locked_until = self._failures.get(ip, (now, 0, 0.0))
        if locked_until <= now and now - first > self.window_seconds:
            self._failures.pop(ip, None)
            return now, 0, 0.0
        return first, count, locked_until

    async def retry_after(self, ip: str) -> int:
        """Seconds until ``ip`` may try again; 0 when it may try now."""
        now = time.time()
        async with self._lock:
            _first, _count, locked_until = self._current(ip, now)
        if locked_until > now:
            return max(1, int(locked_until - now))
        return 0

    async def record_failure(self, ip: str) -> None:
        now = time.time()
        async with self._lock:
            first, count, locked_until = self._current(ip, now)
            count += 1
            if count >= self.max_attempts:
                locked_until = now + self.window_seconds
                log.warning(f"Login locked for {ip} after {count} failed attempts")
            self._failures[ip] = (first, count, locked_until)

    async def record_success(self, ip: str) -> None:
        async with self._lock:
            self._failures.pop(ip, None)


_session_store: SessionStore | None = None
_rate_limiter: LoginRateLimiter | None = None


def get_session_store() -> SessionStore:
    global _session_store

    if _session_store is None:
        _session_store = SessionStore()
    return _session_store


def get_rate_limiter() -> LoginRateLimiter:
    global _rate_limiter

    if _rate_limiter is None:
        from catalogue_console.config import (
            LOGIN_RATE_LIMIT_MAX_ATTEMPTS,
            LOGIN_RATE_LIMIT_WINDOW_SECONDS,
        )

        _rate_limiter = LoginRateLimiter(
            max_attempts=LOGIN_RATE_LIMIT_MAX_ATTEMPTS,
            window_seconds=LOGIN_RATE_LIMIT_WINDOW_SECONDS,
        )
    return _rate_limiter


def reset_session_store() -> None:
    global _session_store
    _session_store = None


def reset_rate_limiter() -> None:
    global _rate_limiter
    _rate_limiter = None
