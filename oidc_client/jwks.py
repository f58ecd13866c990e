"""
Provider signing keys (JWKS), cached per issuer.
Cached for a bounded interval; refetched early when a token names an unknown kid (rate limited).
Readers use an immutable snapshot without locking; refreshes are serialized per issuer.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

import httpx
import jwt
from jwt import PyJWK, PyJWKSet

from oidc_client.errors import InvalidSignatureError, JWKSFetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeySnapshot:
    keys: dict[str, PyJWK] = field(default_factory=dict)
    # Keys published without a kid; usable only when the set has a single signing key
    anonymous: tuple[PyJWK, ...] = ()
    fetched_at: float = 0.0

    def select(self, kid: str | None) -> PyJWK | None:
        if kid is not None:
            return self.keys.get(kid)
        candidates = list(self.keys.values()) + list(self.anonymous)
        return candidates[0] if len(candidates) == 1 else None


def parse_jwks(data: dict, fetched_at: float) -> KeySnapshot:
    """Build a snapshot from a JWKS document. Encryption keys and unsupported key types are skipped."""
    try:
        jwk_set = PyJWKSet.from_dict(data)
    except jwt.PyJWTError as e:
        raise JWKSFetchError(f"JWKS document has no usable keys: {e}") from e
    keys: dict[str, PyJWK] = {}
    anonymous: list[PyJWK] = []
    for k in jwk_set.keys:
        if getattr(k, "public_key_use", None) not in (None, "sig"):
            continue
        if k.key_id:
            keys[k.key_id] = k
        else:
            anonymous.append(k)
    return KeySnapshot(keys=keys, anonymous=tuple(anonymous), fetched_at=fetched_at)


class JWKSCache:
    def __init__(
        self,
        *,
        ttl: float = 300,
        min_refresh_interval: float = 30,
        timeout: float = 10.0,
        allow_stale: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.min_refresh_interval = min_refresh_interval
        self.timeout = timeout
        self.allow_stale = allow_stale
        self._clock = clock
        self._snapshots: dict[str, KeySnapshot] = {}
        # Last failed fetch per issuer; refetches wait min_refresh_interval after a failure
        self._failed_at: dict[str, float] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def get_key(self, issuer: str, jwks_uri: str, kid: str | None, timeout: float | None = None) -> PyJWK:
        """
        Return the signing key for kid. Refetches when the cache is stale or the kid is unknown.
        Raises InvalidSignatureError if the provider does not publish the key, JWKSFetchError if
        keys cannot be fetched (and stale keys are not allowed).
        """
        snapshot = self._snapshots.get(issuer)
        now = self._clock()
        if snapshot is not None:
            fresh = (now - snapshot.fetched_at) < self.ttl
            key = snapshot.select(kid)
            if fresh and key is not None:
                return key
            if fresh and (now - snapshot.fetched_at) < self.min_refresh_interval:
                logger.info("Unknown kid %r for %s; JWKS fetched too recently to refetch", kid, issuer)
                raise InvalidSignatureError(f"No signing key for kid {kid!r}")

        snapshot = self._refresh(issuer, jwks_uri, seen=snapshot, timeout=timeout)
        key = snapshot.select(kid)
        if key is None:
            raise InvalidSignatureError(f"No signing key for kid {kid!r}")
        return key

    def _lock_for(self, issuer: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(issuer)
            if lock is None:
                lock = self._locks[issuer] = threading.Lock()
            return lock

    def _refresh(self, issuer: str, jwks_uri: str, *, seen: KeySnapshot | None, timeout: float | None) -> KeySnapshot:
        with self._lock_for(issuer):
            current = self._snapshots.get(issuer)
            # Another thread refreshed while we waited for the lock
            if current is not None and current is not seen:
                return current
            try:
                failed_at = self._failed_at.get(issuer)
                if failed_at is not None and (self._clock() - failed_at) < self.min_refresh_interval:
                    raise JWKSFetchError("JWKS fetch failed recently; not retrying yet")
                try:
                    data = self._fetch(jwks_uri, timeout)
                    snapshot = parse_jwks(data, self._clock())
                except JWKSFetchError:
                    self._failed_at[issuer] = self._clock()
                    raise
            except JWKSFetchError:
                if self.allow_stale and current is not None:
                    logger.warning("JWKS refresh for %s failed; using stale keys", issuer)
                    return current
                raise
            self._snapshots[issuer] = snapshot
            self._failed_at.pop(issuer, None)
            logger.info("JWKS refreshed for %s: %d keys", issuer, len(snapshot.keys) + len(snapshot.anonymous))
            return snapshot

    def _fetch(self, jwks_uri: str, timeout: float | None) -> dict:
        try:
            r = httpx.get(
                jwks_uri,
                headers={"Accept": "application/json"},
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.HTTPError as e:
            raise JWKSFetchError(f"JWKS request failed: {e.__class__.__name__}") from e
        if r.status_code != 200:
            raise JWKSFetchError(f"JWKS request returned status {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise JWKSFetchError("JWKS response is not JSON") from e
        if not isinstance(data, dict):
            raise JWKSFetchError("JWKS response is not a JSON object")
        return data
