"""
Authorization code exchange at the provider token endpoint (RFC 6749 §4.1.3 + PKCE code_verifier).
Codes are single-use, so a failed exchange is reported and never retried here.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx

from oidc_client.config import TOKEN_AUTH_BASIC, OIDCConfig
from oidc_client.errors import ExchangeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    id_token: str | None
    token_type: str
    expiry: datetime | None
    scope: str = ""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error_fields(r: httpx.Response) -> tuple[str | None, str | None]:
    """(error, error_description) from an RFC 6749 §5.2 JSON error body, if there is one."""
    if not r.headers.get("content-type", "").startswith("application/json"):
        return None, None
    try:
        body = r.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    return body.get("error"), body.get("error_description")


class TokenExchanger:
    def __init__(self, config: OIDCConfig, now: Callable[[], datetime] = _utcnow):
        self.config = config
        self._now = now

    def _request_args(self, code: str, verifier: str) -> tuple[dict, tuple[str, str] | None]:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "client_id": self.config.client_id,
            "code_verifier": verifier,
        }
        auth = None
        if self.config.client_secret:
            if self.config.token_auth_method == TOKEN_AUTH_BASIC:
                auth = (self.config.client_id, self.config.client_secret)
            else:
                data["client_secret"] = self.config.client_secret
        return data, auth

    def exchange(self, code: str, verifier: str, timeout: float | None = None) -> TokenResponse:
        """
        POST the code and verifier to the token endpoint. Raises ExchangeError on network
        failure, non-2xx status, or a response without access_token.
        """
        data, auth = self._request_args(code, verifier)
        kwargs = {"auth": auth} if auth else {}
        try:
            r = httpx.post(
                self.config.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
                timeout=timeout if timeout is not None else self.config.http_timeout,
                **kwargs,
            )
        except httpx.HTTPError as e:
            logger.warning("Token endpoint unreachable: %s", e.__class__.__name__)
            raise ExchangeError("Token endpoint request failed", error="network_error") from e

        if not 200 <= r.status_code < 300:
            error, description = _error_fields(r)
            logger.warning("Token exchange rejected: status=%s error=%s", r.status_code, error)
            raise ExchangeError(
                f"Token exchange failed with status {r.status_code}",
                error=error,
                description=description,
                status_code=r.status_code,
            )

        try:
            body = r.json()
        except ValueError:
            body = None
        if not isinstance(body, dict) or not body.get("access_token"):
            raise ExchangeError(
                "Token response is not a JSON object with access_token",
                error="invalid_response",
                status_code=r.status_code,
            )

        expiry = None
        expires_in = body.get("expires_in")
        if expires_in is not None:
            try:
                expiry = self._now() + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError, OverflowError):
                logger.debug("Ignoring unusable expires_in: %r", expires_in)
        return TokenResponse(
            access_token=body["access_token"],
            id_token=body.get("id_token") or None,
            token_type=body.get("token_type", "Bearer"),
            expiry=expiry,
            scope=body.get("scope", ""),
        )
