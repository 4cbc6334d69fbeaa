"""
Session-based authentication for the single admin account.

Sessions live in memory, keyed by an opaque random token. The browser holds
the token signed with the session secret (itsdangerous TimestampSigner), so a
forged or tampered cookie never reaches the store lookup. Sessions expire
after a fixed TTL.
"""

import hmac
import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, Request
from itsdangerous import BadSignature, TimestampSigner

from .exceptions import InvalidCredentials, SessionError

logger = logging.getLogger(__name__)

COOKIE_NAME = "pm2panel_session"


@dataclass
class Session:
    """Server-side session state."""

    token: str
    authenticated: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    expires_at: Optional[datetime] = None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and datetime.now() >= self.expires_at


class SessionStore:
    """In-memory session store with signed cookie values."""

    def __init__(self, secret: str, ttl: int = 24 * 60 * 60):
        self.ttl = ttl
        self._signer = TimestampSigner(secret, salt="pm2panel-session")
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, authenticated: bool = False) -> tuple[Session, str]:
        """Create a session. Returns the session and the signed cookie value."""
        token = secrets.token_urlsafe(32)
        session = Session(
            token=token,
            authenticated=authenticated,
            expires_at=datetime.now() + timedelta(seconds=self.ttl),
        )
        with self._lock:
            self._purge_expired()
            self._sessions[token] = session
        return session, self._signer.sign(token).decode()

    def get(self, cookie_value: Optional[str]) -> Optional[Session]:
        """Look up the session behind a signed cookie value."""
        if not cookie_value:
            return None
        try:
            token = self._signer.unsign(cookie_value, max_age=self.ttl).decode()
        except BadSignature:
            # Also covers SignatureExpired
            return None

        with self._lock:
            session = self._sessions.get(token)
            if session and session.expired:
                del self._sessions[token]
                return None
            return session

    def destroy(self, token: str):
        """Remove a session. Raises SessionError if it no longer exists."""
        with self._lock:
            if self._sessions.pop(token, None) is None:
                raise SessionError()

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired()

    def _purge_expired(self) -> int:
        expired = [token for token, session in self._sessions.items() if session.expired]
        for token in expired:
            del self._sessions[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class SessionAuth:
    """Login/logout against the configured admin credentials."""

    def __init__(self, username: str, password: str, store: SessionStore):
        self._username = username.encode()
        self._password = password.encode()
        self.store = store

    def check_credentials(self, username: str, password: str) -> bool:
        # Evaluate both comparisons so timing does not reveal which one failed
        user_ok = hmac.compare_digest(username.encode(), self._username)
        password_ok = hmac.compare_digest(password.encode(), self._password)
        return user_ok & password_ok

    def login(self, username: str, password: str, previous: Optional[Session] = None) -> str:
        """
        Authenticate and open a new session.

        Returns the signed cookie value. Raises InvalidCredentials on mismatch,
        without creating a session. Any session presented with the request is
        replaced.
        """
        if not self.check_credentials(username, password):
            logger.warning("Failed login attempt")
            raise InvalidCredentials()

        if previous is not None:
            try:
                self.store.destroy(previous.token)
            except SessionError:
                logger.debug("Previous session already gone")

        _, cookie_value = self.store.create(authenticated=True)
        logger.info("Admin logged in")
        return cookie_value

    def logout(self, session: Session):
        self.store.destroy(session.token)
        logger.info("Admin logged out")

    def authenticate(self, cookie_value: Optional[str]) -> Optional[Session]:
        """Return the authenticated session for a cookie value, if any."""
        session = self.store.get(cookie_value)
        if session is None or not session.authenticated:
            return None
        return session


def current_session(request: Request) -> Optional[Session]:
    auth: SessionAuth = request.app.state.auth
    return auth.authenticate(request.cookies.get(COOKIE_NAME))


def require_auth(request: Request) -> Session:
    """FastAPI dependency admitting only requests with an authenticated session."""
    session = current_session(request)
    if session is None:
        raise HTTPException(status_code=401, detail="unauthorized")
    request.state.session = session
    return session
