"""Tests for client_web routes: /login redirect, /callback success and failure handling."""
import asyncio
from contextlib import suppress
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from client_web.main import _sweep_periodically, app, get_coordinator
from oidc_client.errors import ClaimValidationError, ExchangeError, InvalidStateError
from oidc_client.id_token import IdentityClaims

CLAIMS = IdentityClaims(
    subject="user-42",
    email="alice@example.com",
    issuer="http://127.0.0.1:9000",
    audience=("test-client",),
    expiry=datetime(2030, 1, 1, tzinfo=timezone.utc),
    issued_at=datetime(2029, 12, 31, tzinfo=timezone.utc),
)


class StubCoordinator:
    def __init__(self, result=CLAIMS):
        self.result = result
        self.completed = []
        self.aborted = []

    def begin(self):
        return "https://idp.example/authorize?state=s1&code_challenge=c&code_challenge_method=S256"

    def complete(self, state, code):
        self.completed.append((state, code))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result

    def abort(self, state, error):
        self.aborted.append((state, error))


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use(coordinator):
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    return coordinator


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("service") == "client_web"


def test_home_returns_html_with_login_link(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "/login" in r.text


def test_login_redirects_to_provider(client):
    """Uses the app's real coordinator configured from the environment defaults."""
    coordinator = app.state.coordinator
    before = len(coordinator.store)
    r = client.get("/login", follow_redirects=False)
    assert r.status_code == 302
    location = r.headers["location"]
    params = parse_qs(urlsplit(location).query)
    assert "/authorize?" in location
    assert params["response_type"] == ["code"]
    assert params["code_challenge_method"] == ["S256"]
    assert params["client_id"] == [coordinator.config.client_id]
    assert "state" in params and "nonce" in params
    assert len(coordinator.store) == before + 1
    # Leave the shared store as we found it
    coordinator.store.resolve(params["state"][0])


def test_callback_success_redirects_to_landing(client):
    stub = _use(StubCoordinator())
    r = client.get("/callback", params={"state": "s1", "code": "abc"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert stub.completed == [("s1", "abc")]


def test_callback_unknown_state(client):
    stub = _use(StubCoordinator(InvalidStateError()))
    r = client.get("/callback", params={"state": "unknown-state", "code": "somecode"})
    assert r.status_code == 400
    assert "Authentication failed" in r.text
    assert stub.completed == [("unknown-state", "somecode")]


def test_callback_unknown_state_with_real_coordinator(client):
    r = client.get("/callback", params={"state": "never-issued", "code": "abc"})
    assert r.status_code == 400
    assert "Authentication failed" in r.text


def test_callback_missing_params(client):
    stub = _use(StubCoordinator(InvalidStateError()))
    r = client.get("/callback")
    assert r.status_code == 400
    assert stub.completed == [(None, None)]


@pytest.mark.parametrize(
    "failure",
    [
        ExchangeError("Token exchange failed", error="invalid_grant", description="code reused at 10.0.0.7"),
        ClaimValidationError("aud", "Audience internal-audience-xyz does not match"),
    ],
)
def test_callback_failure_does_not_leak_detail(client, failure):
    _use(StubCoordinator(failure))
    r = client.get("/callback", params={"state": "s1", "code": "abc"})
    assert r.status_code == 400
    assert "Authentication failed" in r.text
    assert "10.0.0.7" not in r.text
    assert "internal-audience-xyz" not in r.text
    assert "invalid_grant" not in r.text


def test_callback_error_from_provider(client):
    stub = _use(StubCoordinator())
    r = client.get(
        "/callback",
        params={"state": "state-for-error", "error": "access_denied", "error_description": "<b>User denied</b>"},
    )
    assert r.status_code == 400
    assert "<b>User denied</b>" not in r.text
    assert stub.aborted == [("state-for-error", "access_denied")]
    assert stub.completed == []


def test_lifespan_starts_and_stops_sweeper():
    with TestClient(app) as c:
        assert c.get("/health").status_code == 200


def test_sweeper_sweeps_periodically():
    class CountingStore:
        sweeps = 0

        def sweep(self):
            self.sweeps += 1

    async def run(store):
        task = asyncio.create_task(_sweep_periodically(store, 0.01))
        await asyncio.sleep(0.1)
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    store = CountingStore()
    asyncio.run(run(store))
    assert store.sweeps >= 2
