"""
Relying-party configuration for a single OpenID Connect provider.
Built once at startup and passed to every component; validated immediately (fail fast).
"""
import os
from dataclasses import dataclass, field, fields
from typing import Mapping

from oidc_client.errors import ConfigError

TOKEN_AUTH_POST = "client_secret_post"
TOKEN_AUTH_BASIC = "client_secret_basic"
TOKEN_AUTH_METHODS = (TOKEN_AUTH_POST, TOKEN_AUTH_BASIC)

_REQUIRED = (
    "client_id",
    "authorization_endpoint",
    "token_endpoint",
    "redirect_uri",
    "issuer",
    "jwks_uri",
)


@dataclass(frozen=True)
class OIDCConfig:
    client_id: str
    authorization_endpoint: str
    token_endpoint: str
    redirect_uri: str
    issuer: str
    jwks_uri: str
    client_secret: str | None = None
    # Expected ID token audience; OIDC says this is our client_id
    audience: str | None = None
    scope: str = "openid email"
    token_auth_method: str = TOKEN_AUTH_POST

    # Pending login lifetime (seconds). Abandoned logins are swept after this.
    state_ttl: float = 600
    # Outbound timeouts (seconds)
    http_timeout: float = 10.0
    jwks_timeout: float = 10.0
    # JWKS caching: normal lifetime, and minimum gap between refetches on unknown kid
    jwks_cache_ttl: float = 300
    jwks_min_refresh_interval: float = 30
    # Serve stale keys when the JWKS endpoint is down (off: fail closed)
    jwks_allow_stale: bool = False
    # Clock skew tolerated for exp / iat (seconds)
    leeway: float = 60
    allowed_algorithms: tuple[str, ...] = ("RS256",)
    extra_authorize_params: Mapping[str, str] = field(default_factory=dict)

    @property
    def expected_audience(self) -> str:
        return self.audience or self.client_id

    def validate(self) -> "OIDCConfig":
        """Raise ConfigError naming every missing or invalid field. Returns self for chaining."""
        missing = [name for name in _REQUIRED if not (getattr(self, name) or "").strip()]
        if missing:
            raise ConfigError(f"Missing required OIDC settings: {', '.join(missing)}", fields=missing)
        if self.token_auth_method not in TOKEN_AUTH_METHODS:
            raise ConfigError(
                f"token_auth_method must be one of {', '.join(TOKEN_AUTH_METHODS)}",
                fields=["token_auth_method"],
            )
        if self.token_auth_method == TOKEN_AUTH_BASIC and not self.client_secret:
            raise ConfigError("client_secret_basic requires a client_secret", fields=["client_secret"])
        if not self.allowed_algorithms or any(alg.lower() == "none" for alg in self.allowed_algorithms):
            raise ConfigError("allowed_algorithms must list at least one real signing algorithm", fields=["allowed_algorithms"])
        bad = [
            f.name
            for f in fields(self)
            if f.name in ("state_ttl", "http_timeout", "jwks_timeout", "jwks_cache_ttl")
            and getattr(self, f.name) <= 0
        ]
        if bad:
            raise ConfigError(f"Must be positive: {', '.join(bad)}", fields=bad)
        negative = [name for name in ("leeway", "jwks_min_refresh_interval") if getattr(self, name) < 0]
        if negative:
            raise ConfigError(f"Must not be negative: {', '.join(negative)}", fields=negative)
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OIDCConfig":
        """
        Build from OAUTH_* environment variables. Endpoints default from OAUTH_ISSUER
        (/authorize, /token, /.well-known/jwks.json). Validates before returning.
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: str = "") -> str:
            return env.get(name, default).strip()

        issuer = get("OAUTH_ISSUER").rstrip("/")
        kwargs = dict(
            client_id=get("OAUTH_CLIENT_ID"),
            client_secret=get("OAUTH_CLIENT_SECRET") or None,
            issuer=issuer,
            redirect_uri=get("OAUTH_REDIRECT_URI"),
            authorization_endpoint=get("OAUTH_AUTHORIZATION_ENDPOINT") or (f"{issuer}/authorize" if issuer else ""),
            token_endpoint=get("OAUTH_TOKEN_ENDPOINT") or (f"{issuer}/token" if issuer else ""),
            jwks_uri=get("OAUTH_JWKS_URI") or (f"{issuer}/.well-known/jwks.json" if issuer else ""),
            audience=get("OAUTH_AUDIENCE") or None,
            scope=get("OAUTH_SCOPE", "openid email"),
            token_auth_method=get("OAUTH_TOKEN_AUTH_METHOD", TOKEN_AUTH_POST),
            jwks_allow_stale=get("OAUTH_JWKS_ALLOW_STALE").lower() in ("1", "true", "yes"),
        )
        numeric = {
            "state_ttl": "OAUTH_STATE_TTL",
            "http_timeout": "OAUTH_HTTP_TIMEOUT",
            "jwks_timeout": "OAUTH_JWKS_TIMEOUT",
            "jwks_cache_ttl": "OAUTH_JWKS_CACHE_TTL",
            "leeway": "OAUTH_LEEWAY",
        }
        for attr, var in numeric.items():
            raw = get(var)
            if not raw:
                continue
            try:
                kwargs[attr] = float(raw)
            except ValueError:
                raise ConfigError(f"{var} must be a number, got {raw!r}", fields=[attr]) from None
        algorithms = get("OAUTH_ALLOWED_ALGORITHMS")
        if algorithms:
            kwargs["allowed_algorithms"] = tuple(a.strip() for a in algorithms.split(",") if a.strip())
        return cls(**kwargs).validate()
