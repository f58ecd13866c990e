"""
Client Web App: OIDC login with Authorization Code + PKCE.
GET /login redirects to the provider; GET /callback completes the login and redirects to the
landing page. Any failure shows one generic page; the specific kind goes to the logs.
"""
import asyncio
import html
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from client_web.config import LANDING_PATH, OIDC_CONFIG, SWEEP_INTERVAL
from oidc_client.errors import LoginError
from oidc_client.flow import LoginFlowCoordinator
from oidc_client.state_store import StateStore

logger = logging.getLogger(__name__)


async def _sweep_periodically(store: StateStore, interval: float) -> None:
    """Drop abandoned login attempts so the store stays bounded."""
    while True:
        await asyncio.sleep(interval)
        store.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the login-attempt sweeper for the lifetime of the app."""
    coordinator: LoginFlowCoordinator = app.state.coordinator
    task = asyncio.create_task(_sweep_periodically(coordinator.store, SWEEP_INTERVAL))
    try:
        yield
    finally:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="Client Web", version="0.4.0", lifespan=lifespan)
app.state.coordinator = LoginFlowCoordinator(OIDC_CONFIG)


def get_coordinator(request: Request) -> LoginFlowCoordinator:
    return request.app.state.coordinator


def _failure_page(status_code: int = 400) -> HTMLResponse:
    return HTMLResponse(
        """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Login error</title></head>
<body>
  <h1>Authentication failed</h1>
  <p>We could not sign you in. Please try logging in again.</p>
  <p><a href="/login">Log in</a> | <a href="/">Home</a></p>
</body>
</html>""",
        status_code=status_code,
    )


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "client_web"}


@app.get("/", response_class=HTMLResponse)
def home():
    """Home page with a link to start login."""
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>OIDC Client</title></head>
<body>
  <h1>OpenID Connect Client</h1>
  <p>Provider: <code>{html.escape(OIDC_CONFIG.issuer)}</code></p>
  <p><a href="/login">Log in</a></p>
</body>
</html>"""
    )


@app.get("/login")
def login(coordinator: LoginFlowCoordinator = Depends(get_coordinator)):
    """Start a login: new state + PKCE verifier + nonce, then redirect to the provider."""
    return RedirectResponse(url=coordinator.begin(), status_code=302)


@app.get("/callback")
def callback(
    state: str | None = None,
    code: str | None = None,
    error: str | None = None,
    coordinator: LoginFlowCoordinator = Depends(get_coordinator),
):
    """
    Provider redirect target (?code=...&state=... or ?error=...&state=...).
    Success redirects to the landing page; establishing the app session is left to the deployment.
    """
    if error:
        # Provider-controlled value; keep the log line bounded
        coordinator.abort(state, error[:64])
        return _failure_page()

    try:
        claims = coordinator.complete(state, code)
    except LoginError as e:
        logger.info("Login rejected: %s", e.kind)
        return _failure_page()

    logger.info("Login complete for sub=%s", claims.subject)
    return RedirectResponse(url=LANDING_PATH, status_code=302)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "client_web.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
