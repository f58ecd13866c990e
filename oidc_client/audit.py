"""
Audit logging for login events. Security-relevant events only; no tokens, codes,
verifiers or secrets. Written to the "oidc_client.audit" logger so deployments can route it.
"""
import logging

audit_logger = logging.getLogger("oidc_client.audit")

EVENT_LOGIN_BEGIN = "login_begin"
EVENT_LOGIN_OK = "login_ok"
EVENT_LOGIN_FAIL = "login_fail"
EVENT_PROVIDER_ERROR = "provider_error"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def log_audit(
    event_type: str,
    *,
    client_id: str | None = None,
    subject: str | None = None,
    reason: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
) -> None:
    """Emit one audit record. Failures log at WARNING, everything else at INFO."""
    level = logging.WARNING if outcome == OUTCOME_FAIL else logging.INFO
    audit_logger.log(
        level,
        "event=%s outcome=%s client_id=%s subject=%s reason=%s",
        event_type,
        outcome,
        client_id,
        subject,
        reason,
        extra={
            "event_type": event_type,
            "outcome": outcome,
            "client_id": client_id,
            "subject": subject,
            "reason": reason,
        },
    )
