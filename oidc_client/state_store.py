"""
In-memory store for pending logins (state -> PKCE verifier, nonce).
Used between begin() and complete(). Single-use entries with a TTL to avoid unbounded growth.
One lock guards the map; create and resolve are each a single critical section.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# Default TTL seconds for a pending login (provider codes live ~1 min; allow 10 min for the user)
DEFAULT_TTL = 600

# 32 bytes -> 43 chars base64url: 256 bits for state; verifier length is the RFC 7636 minimum
_TOKEN_BYTES = 32


@dataclass(frozen=True)
class LoginAttempt:
    state: str
    verifier: str
    nonce: str
    created_at: float


class StateStore:
    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._pending: dict[str, LoginAttempt] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def create(self) -> LoginAttempt:
        """
        Register a new pending login with fresh random state, verifier and nonce.
        Errors from the entropy source propagate; callers should treat them as fatal.
        """
        verifier = secrets.token_urlsafe(_TOKEN_BYTES)
        nonce = secrets.token_urlsafe(_TOKEN_BYTES)
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            state = secrets.token_urlsafe(_TOKEN_BYTES)
            while state in self._pending:
                state = secrets.token_urlsafe(_TOKEN_BYTES)
            attempt = LoginAttempt(state=state, verifier=verifier, nonce=nonce, created_at=now)
            self._pending[state] = attempt
        return attempt

    def resolve(self, state: str | None) -> LoginAttempt | None:
        """
        Remove and return the pending login for state. None when never issued, already
        resolved, or expired; callers cannot tell these apart.
        """
        if not state:
            return None
        with self._lock:
            attempt = self._pending.pop(state, None)
            now = self._clock()
            self._sweep_locked(now)
        if attempt is None or self._expired(attempt, now):
            return None
        return attempt

    def sweep(self, now: float | None = None) -> int:
        """Drop expired entries. Returns how many were removed."""
        with self._lock:
            removed = self._sweep_locked(self._clock() if now is None else now)
        if removed:
            logger.debug("Swept %d expired login attempts", removed)
        return removed

    def _expired(self, attempt: LoginAttempt, now: float) -> bool:
        return (now - attempt.created_at) > self.ttl

    def _sweep_locked(self, now: float) -> int:
        expired = [s for s, a in self._pending.items() if self._expired(a, now)]
        for s in expired:
            del self._pending[s]
        return len(expired)
