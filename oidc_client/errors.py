"""
Login failure taxonomy. Every failure from complete() is a LoginError; the web layer
shows one generic message and logs the specific kind.
"""


class ConfigError(ValueError):
    """Missing or invalid configuration. Raised at startup, never per request."""

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class LoginError(Exception):
    """Base for every per-login failure."""

    kind = "login_error"


class InvalidStateError(LoginError):
    """State unknown, expired, or already used. User must restart login."""

    kind = "invalid_state"

    def __init__(self, message: str = "Invalid or expired state"):
        super().__init__(message)


class ExchangeError(LoginError):
    """Token endpoint rejected the code or could not be reached. Never retried automatically."""

    kind = "exchange_error"

    def __init__(
        self,
        message: str,
        *,
        error: str | None = None,
        description: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.description = description
        self.status_code = status_code


class MissingIDTokenError(LoginError):
    """Token response had no id_token (openid scope missing or provider contract violation)."""

    kind = "missing_id_token"

    def __init__(self, message: str = "Token response did not include an id_token"):
        super().__init__(message)


class TokenValidationError(LoginError):
    """ID token rejected. Security-relevant: audit it, never show detail to the user."""

    kind = "token_invalid"


class MalformedTokenError(TokenValidationError):
    kind = "malformed_token"


class InvalidSignatureError(TokenValidationError):
    kind = "invalid_signature"


class ClaimValidationError(TokenValidationError):
    kind = "invalid_claim"

    def __init__(self, claim: str, message: str | None = None):
        super().__init__(message or f"Invalid '{claim}' claim")
        self.claim = claim


class JWKSFetchError(TokenValidationError):
    """Signing keys could not be fetched and no usable cached keys exist."""

    kind = "jwks_unavailable"
