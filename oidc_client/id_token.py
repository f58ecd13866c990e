"""
OpenID Connect ID token verification (OIDC Core §3.1.3.7).

Signature is always checked before any claim is read. UnverifiedIDToken exposes only the
JOSE header; IdentityClaims is produced by IDTokenValidator after the signature verifies.
"""
import json
import logging
import math
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Mapping

import jwt

from oidc_client.config import OIDCConfig
from oidc_client.errors import ClaimValidationError, InvalidSignatureError, MalformedTokenError
from oidc_client.jwks import JWKSCache

logger = logging.getLogger(__name__)

_SEGMENT = re.compile(r"[A-Za-z0-9_-]+")

# Claims surfaced as IdentityClaims attributes; everything else goes to extra
_STANDARD_CLAIMS = {"sub", "email", "iss", "aud", "exp", "iat"}


class UnverifiedIDToken:
    """A structurally valid compact JWS. Gives access to the header only."""

    __slots__ = ("raw", "header")

    def __init__(self, raw: str, header: dict):
        self.raw = raw
        self.header = header

    @property
    def kid(self) -> str | None:
        kid = self.header.get("kid")
        return kid if isinstance(kid, str) else None

    @property
    def alg(self) -> str | None:
        alg = self.header.get("alg")
        return alg if isinstance(alg, str) else None

    @classmethod
    def parse(cls, raw: Any) -> "UnverifiedIDToken":
        """Require header.payload.signature, three non-empty base64url segments, and a JSON header."""
        if not isinstance(raw, str):
            raise MalformedTokenError("ID token is not a string")
        segments = raw.split(".")
        if len(segments) != 3 or not all(_SEGMENT.fullmatch(s) for s in segments):
            raise MalformedTokenError("ID token is not three base64url segments")
        try:
            header = jwt.get_unverified_header(raw)
        except jwt.DecodeError as e:
            raise MalformedTokenError(f"ID token header is invalid: {e}") from e
        if not isinstance(header, dict) or not isinstance(header.get("alg"), str):
            raise MalformedTokenError("ID token header has no alg")
        return cls(raw, header)


@dataclass(frozen=True)
class IdentityClaims:
    subject: str
    email: str | None
    issuer: str
    audience: tuple[str, ...]
    expiry: datetime
    issued_at: datetime
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def email_verified(self) -> bool:
        return self.extra.get("email_verified") is True


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _timestamp(claim: str, value: float) -> datetime:
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, ValueError, OSError) as e:
        raise ClaimValidationError(claim, f"'{claim}' is outside the representable date range") from e


# JWK kty each JWS algorithm family verifies with
_KEY_TYPES = {"RS": "RSA", "PS": "RSA", "ES": "EC", "Ed": "OKP", "HS": "oct"}


class IDTokenValidator:
    def __init__(
        self,
        config: OIDCConfig,
        keys: JWKSCache | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.keys = keys or JWKSCache(
            ttl=config.jwks_cache_ttl,
            min_refresh_interval=config.jwks_min_refresh_interval,
            timeout=config.jwks_timeout,
            allow_stale=config.jwks_allow_stale,
        )
        self._clock = clock

    def validate(
        self,
        raw: str,
        *,
        audience: str | None = None,
        issuer: str | None = None,
        nonce: str | None = None,
        timeout: float | None = None,
    ) -> IdentityClaims:
        """
        Verify signature, then iss / aud / azp / exp / iat / nbf / nonce. Returns IdentityClaims.
        Raises MalformedTokenError, InvalidSignatureError, ClaimValidationError or JWKSFetchError.
        """
        audience = audience or self.config.expected_audience
        issuer = issuer or self.config.issuer

        token = UnverifiedIDToken.parse(raw)
        payload = self._verify_signature(token, issuer, timeout)
        return self._check_claims(payload, audience=audience, issuer=issuer, nonce=nonce)

    def _verify_signature(self, token: UnverifiedIDToken, issuer: str, timeout: float | None) -> dict:
        alg = token.alg
        if alg not in self.config.allowed_algorithms:
            raise InvalidSignatureError(f"Algorithm {alg!r} is not allowed")

        # Keys are looked up under the expected issuer; the token's own iss is not trusted yet
        key = self.keys.get_key(issuer, self.config.jwks_uri, token.kid, timeout=timeout)
        expected_kty = _KEY_TYPES.get(alg[:2])
        if key.key_type != expected_kty:
            raise InvalidSignatureError(f"Key {token.kid!r} is {key.key_type}, token uses {alg}")

        try:
            return jwt.decode(
                token.raw,
                key.key,
                algorithms=[alg],
                options={
                    "verify_signature": True,
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                    "verify_aud": False,
                    "verify_iss": False,
                    "verify_sub": False,
                    "verify_jti": False,
                    "require": [],
                },
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidSignatureError("ID token signature does not verify") from e
        except (jwt.InvalidAlgorithmError, jwt.InvalidKeyError, TypeError) as e:
            raise InvalidSignatureError(f"Key {token.kid!r} cannot verify {alg}: {e}") from e
        except (jwt.DecodeError, json.JSONDecodeError) as e:
            raise MalformedTokenError(f"ID token payload is invalid: {e}") from e
        except jwt.PyJWTError as e:
            raise MalformedTokenError(f"ID token could not be decoded: {e}") from e

    def _check_claims(self, payload: dict, *, audience: str, issuer: str, nonce: str | None) -> IdentityClaims:
        now = self._clock()
        leeway = self.config.leeway

        if payload.get("iss") != issuer:
            raise ClaimValidationError("iss", "Issuer does not match")

        aud = payload.get("aud")
        audiences = [aud] if isinstance(aud, str) else aud
        if not isinstance(audiences, list) or not all(isinstance(a, str) for a in audiences):
            raise ClaimValidationError("aud", "Audience claim is missing or malformed")
        if audience not in audiences:
            raise ClaimValidationError("aud", "Audience does not include this client")
        if len(audiences) > 1 and "azp" in payload and payload["azp"] != self.config.client_id:
            raise ClaimValidationError("azp", "Authorized party is not this client")

        exp = payload.get("exp")
        if not _is_number(exp):
            raise ClaimValidationError("exp", "Expiry claim is missing")
        if exp <= now - leeway:
            raise ClaimValidationError("exp", "ID token has expired")

        iat = payload.get("iat")
        if not _is_number(iat):
            raise ClaimValidationError("iat", "Issued-at claim is missing")
        if iat > now + leeway:
            raise ClaimValidationError("iat", "ID token issued in the future")

        nbf = payload.get("nbf")
        if nbf is not None and (not _is_number(nbf) or nbf > now + leeway):
            raise ClaimValidationError("nbf", "ID token not yet valid")

        if nonce is not None:
            token_nonce = payload.get("nonce")
            if not isinstance(token_nonce, str) or not secrets.compare_digest(token_nonce, nonce):
                raise ClaimValidationError("nonce", "Nonce does not match this login")

        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub:
            raise ClaimValidationError("sub", "Subject claim is missing")

        expiry = _timestamp("exp", exp)
        issued_at = _timestamp("iat", iat)
        email = payload.get("email")
        return IdentityClaims(
            subject=sub,
            email=email if isinstance(email, str) else None,
            issuer=payload["iss"],
            audience=tuple(audiences),
            expiry=expiry,
            issued_at=issued_at,
            extra=MappingProxyType({k: v for k, v in payload.items() if k not in _STANDARD_CLAIMS}),
        )
