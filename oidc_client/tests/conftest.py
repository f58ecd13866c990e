"""
Shared fixtures for oidc_client tests: provider config, RSA signing keys + JWKS, ID token factory.
"""
import time
from unittest.mock import patch

import httpx
import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key

from oidc_client.config import OIDCConfig

ISSUER = "https://idp.example"


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    s = jwt.utils.base64url_encode(value.to_bytes(length, "big"))
    return s.decode("utf-8") if isinstance(s, bytes) else s


def _make_key(kid: str):
    key = generate_private_key(65537, 2048, default_backend())
    pub = key.public_key().public_numbers()
    jwk = {
        "kty": "RSA",
        "kid": kid,
        "alg": "RS256",
        "use": "sig",
        "n": _int_to_b64url(pub.n),
        "e": _int_to_b64url(pub.e),
    }
    return key, jwk


@pytest.fixture
def config():
    return OIDCConfig(
        client_id="test-client",
        client_secret="s3cret",
        authorization_endpoint=f"{ISSUER}/authorize",
        token_endpoint=f"{ISSUER}/token",
        redirect_uri="https://rp.example/callback",
        issuer=ISSUER,
        jwks_uri=f"{ISSUER}/.well-known/jwks.json",
    ).validate()


@pytest.fixture(scope="session")
def signing_key():
    """(private_key, jwk) published by the provider under kid key-1."""
    return _make_key("key-1")


@pytest.fixture(scope="session")
def rogue_key():
    """A different key that claims the same kid (attacker-signed tokens)."""
    return _make_key("key-1")


@pytest.fixture(scope="session")
def rotated_key():
    return _make_key("key-2")


@pytest.fixture
def jwks(signing_key):
    return {"keys": [signing_key[1]]}


@pytest.fixture
def make_id_token(signing_key):
    """Build a signed ID token; keyword overrides replace claims (None removes the claim)."""

    def _make(*, key=None, kid="key-1", algorithm="RS256", **claims):
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "sub": "user-42",
            "aud": "test-client",
            "email": "alice@example.com",
            "email_verified": True,
            "exp": now + 300,
            "iat": now,
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        headers = {"kid": kid} if kid else {}
        return jwt.encode(payload, key if key is not None else signing_key[0], algorithm=algorithm, headers=headers)

    return _make


@pytest.fixture
def serve_jwks(jwks):
    """Patch the JWKS fetch to return the fixture key set; yields the mock to inspect calls."""
    with patch("oidc_client.jwks.httpx.get", return_value=httpx.Response(200, json=jwks)) as mock_get:
        yield mock_get
