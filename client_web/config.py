"""
Client Web configuration. OIDC settings come from OAUTH_* environment variables; local lab
defaults apply when unset. Validated at import so a misconfigured server fails on startup.
"""
import os

from oidc_client.config import OIDCConfig

_DEFAULTS = {
    # Identity provider (issuer); endpoints default to <issuer>/authorize, /token, /.well-known/jwks.json
    "OAUTH_ISSUER": "http://127.0.0.1:9000",
    # Our client_id (must be registered at the provider)
    "OAUTH_CLIENT_ID": "test-client",
    # Callback URL where the provider redirects after authorization
    "OAUTH_REDIRECT_URI": "http://127.0.0.1:8000/callback",
    "OAUTH_SCOPE": "openid email",
}

OIDC_CONFIG = OIDCConfig.from_env({**_DEFAULTS, **os.environ})

# Where the browser lands after a successful login
LANDING_PATH = os.environ.get("CLIENT_LANDING_PATH", "/")

# Seconds between sweeps of abandoned login attempts
SWEEP_INTERVAL = float(os.environ.get("CLIENT_SWEEP_INTERVAL", "60"))
