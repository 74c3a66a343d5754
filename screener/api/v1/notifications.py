from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from screener.core.security import check_bearer_token
from screener.schemas.screening import (
    CanonicalScreeningResult,
    EmailDispatchRequest,
    EmailDispatchResponse,
    EmailDispatchResult,
)
from screener.services.notifier import NotificationFailure, get_notifier
from screener.services.response_normalizer import normalize_verdict
from screener.services.submission_validator import is_valid_email
from screener.utils.redact import mask_email

router = APIRouter()
logger = logging.getLogger(__name__)


def _auth(authorization: str | None = Header(default=None)):
    check_bearer_token(authorization)


def _canonical_from_dispatch(result: EmailDispatchResult) -> CanonicalScreeningResult:
    steps = result.recommended_next_steps
    if isinstance(steps, str):
        steps = [steps] if steps.strip() else []
    reason = result.short_reason.strip()
    # The raw verdict wins; a caller-supplied normalized form only fills a blank one.
    if result.verdict.strip():
        normalized = normalize_verdict(result.verdict)
    else:
        normalized = result.normalized_verdict or "Unknown"
    return CanonicalScreeningResult(
        overall_score=int(round(result.overall_score)),
        verdict=result.verdict,
        normalized_verdict=normalized,
        summary=reason or "No summary provided.",
        short_reason=reason,
        recommended_next_steps=list(steps),
    )


@router.post("/notifications/candidate-email", response_model=EmailDispatchResponse)
def send_candidate_email(payload: EmailDispatchRequest, _: None = Depends(_auth)):
    """With `candidateId` the stored candidate decides recipient and email type; the body result is ignored."""
    email = payload.candidate_email.strip()
    if not is_valid_email(email):
        return JSONResponse(status_code=400, content={"error": "Invalid email address format", "code": "invalid_email"})

    try:
        outcome = get_notifier().notify(
            name=payload.candidate_name.strip(),
            email=email,
            result=_canonical_from_dispatch(payload.result),
            candidate_id=payload.candidate_id,
        )
    except NotificationFailure as exc:
        logger.warning("candidate_email_dispatch_failed code=%s to=%s: %s", exc.code, mask_email(email), exc)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc), "code": exc.code})

    return EmailDispatchResponse(
        success=True,
        skipped=outcome.status == "skipped",
        status=outcome.status,
        email_type=outcome.email_type,
        email_id=outcome.email_id,
        message=outcome.message,
    )
