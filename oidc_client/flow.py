"""
Login flow: begin() issues state + PKCE and returns the provider URL; complete() consumes the
state, exchanges the code, and verifies the ID token. Collaborators are injected.
"""
import logging

from oidc_client.audit import (
    EVENT_LOGIN_BEGIN,
    EVENT_LOGIN_FAIL,
    EVENT_LOGIN_OK,
    EVENT_PROVIDER_ERROR,
    OUTCOME_FAIL,
    log_audit,
)
from oidc_client.config import OIDCConfig
from oidc_client.errors import (
    ClaimValidationError,
    ExchangeError,
    InvalidStateError,
    LoginError,
    MissingIDTokenError,
)
from oidc_client.id_token import IdentityClaims, IDTokenValidator
from oidc_client.pkce import build_authorize_url
from oidc_client.state_store import StateStore
from oidc_client.token_exchange import TokenExchanger

logger = logging.getLogger(__name__)


class LoginFlowCoordinator:
    def __init__(
        self,
        config: OIDCConfig,
        store: StateStore | None = None,
        exchanger: TokenExchanger | None = None,
        validator: IDTokenValidator | None = None,
    ):
        self.config = config
        self.store = store if store is not None else StateStore(ttl=config.state_ttl)
        self.exchanger = exchanger or TokenExchanger(config)
        self.validator = validator or IDTokenValidator(config)

    def begin(self) -> str:
        """Register a new login attempt and return the authorization URL to redirect to."""
        attempt = self.store.create()
        url = build_authorize_url(
            self.config,
            state=attempt.state,
            verifier=attempt.verifier,
            nonce=attempt.nonce,
        )
        log_audit(EVENT_LOGIN_BEGIN, client_id=self.config.client_id)
        return url

    def complete(self, state: str | None, code: str | None, *, timeout: float | None = None) -> IdentityClaims:
        """
        Finish a login from the provider callback. The attempt for state is consumed before
        any network call, whatever the outcome. Raises a LoginError subclass on failure.
        """
        try:
            claims = self._complete(state, code, timeout)
        except LoginError as e:
            reason = e.kind
            if isinstance(e, ClaimValidationError):
                reason = f"{e.kind}:{e.claim}"
            elif isinstance(e, ExchangeError) and e.error:
                reason = f"{e.kind}:{e.error}"
            log_audit(EVENT_LOGIN_FAIL, client_id=self.config.client_id, reason=reason, outcome=OUTCOME_FAIL)
            logger.debug("Login failed (%s): %s", reason, e)
            raise
        log_audit(EVENT_LOGIN_OK, client_id=self.config.client_id, subject=claims.subject)
        return claims

    def abort(self, state: str | None, error: str | None) -> None:
        """Provider redirected back with an error (e.g. access_denied): drop the attempt and audit it."""
        self.store.resolve(state)
        log_audit(EVENT_PROVIDER_ERROR, client_id=self.config.client_id, reason=error, outcome=OUTCOME_FAIL)

    def _complete(self, state: str | None, code: str | None, timeout: float | None) -> IdentityClaims:
        attempt = self.store.resolve(state)
        if attempt is None:
            raise InvalidStateError()
        if not code:
            raise ExchangeError("Callback has no authorization code", error="invalid_request")

        tokens = self.exchanger.exchange(code, attempt.verifier, timeout=timeout)
        if not tokens.id_token:
            raise MissingIDTokenError()
        return self.validator.validate(tokens.id_token, nonce=attempt.nonce, timeout=timeout)
