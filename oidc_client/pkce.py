"""
PKCE (RFC 7636) challenge and the provider authorization URL. S256 only.
"""
import hashlib
from base64 import urlsafe_b64encode
from urllib.parse import urlencode, urlsplit

from oidc_client.config import OIDCConfig
from oidc_client.errors import ConfigError

CHALLENGE_METHOD = "S256"


def code_challenge(verifier: str) -> str:
    """base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def build_authorize_url(
    config: OIDCConfig,
    *,
    state: str,
    verifier: str,
    nonce: str | None = None,
) -> str:
    """Build the provider /authorize URL with required and optional params."""
    missing = [
        name
        for name in ("client_id", "redirect_uri", "authorization_endpoint")
        if not getattr(config, name)
    ]
    if missing:
        raise ConfigError(f"Cannot build authorization URL without {', '.join(missing)}", fields=missing)

    params = dict(config.extra_authorize_params)
    params.update(
        {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "scope": config.scope,
            "state": state,
            "code_challenge": code_challenge(verifier),
            "code_challenge_method": CHALLENGE_METHOD,
        }
    )
    if nonce:
        params["nonce"] = nonce
    # Some providers publish an endpoint that already carries a query string
    separator = "&" if urlsplit(config.authorization_endpoint).query else "?"
    return f"{config.authorization_endpoint}{separator}{urlencode(params)}"
