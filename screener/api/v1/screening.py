from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from screener.core.config import settings
from screener.core.submission_rate_limit import (
    SubmissionRateLimitExceeded,
    client_key_from_headers,
    get_submission_limiter,
)
from screener.schemas.screening import CanonicalScreeningResult, ResumeUpload, ScreeningResponse
from screener.services.scoring_gateway import ScoringError
from screener.services.screening_service import get_screening_service
from screener.services.submission_validator import (
    FIELD_EMAIL,
    FIELD_FULL_NAME,
    FIELD_HONEYPOT,
    FIELD_JOB_DESCRIPTION,
    FIELD_RESUME,
    RawSubmission,
    SubmissionValidationError,
    honeypot_result,
    is_honeypot_triggered,
    raw_submission_from_json,
    validate_submission,
)
from screener.utils.redact import mask_client_key, mask_email

router = APIRouter()
logger = logging.getLogger(__name__)

UPLOAD_CHUNK_BYTES = 64 * 1024


def _error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


def _rate_limited_response(exc: SubmissionRateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Too many submissions. Please try again later.",
            "retryAfter": exc.retry_after,
        },
        headers={"Retry-After": str(exc.retry_after)},
    )


def _form_text(form: Any, key: str) -> str:
    value = form.get(key)
    if not isinstance(value, str):
        return ""
    return value.strip()


async def _read_upload(upload: UploadFile, max_bytes: int) -> bytes:
    # Stops one chunk past the limit; the validator reports the oversize.
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        chunks.append(chunk)
        if total > max_bytes:
            break
    return b"".join(chunks)


async def _read_submission(request: Request) -> RawSubmission:
    content_type = (request.headers.get("content-type") or "").lower()
    if content_type.startswith("multipart/form-data") or content_type.startswith(
        "application/x-www-form-urlencoded"
    ):
        form = await request.form()
        resume = None
        upload = form.get(FIELD_RESUME)
        if isinstance(upload, UploadFile):
            content = await _read_upload(upload, settings.resume_max_bytes)
            resume = ResumeUpload(
                filename=(upload.filename or "")[:255],
                content_type=(upload.content_type or "")[:120],
                content=content,
            )
        return RawSubmission(
            full_name=_form_text(form, FIELD_FULL_NAME),
            email=_form_text(form, FIELD_EMAIL),
            job_description=_form_text(form, FIELD_JOB_DESCRIPTION),
            honeypot=_form_text(form, FIELD_HONEYPOT),
            resume_file=resume,
            is_multipart=True,
        )

    try:
        body = await request.json()
    except ValueError as exc:
        raise SubmissionValidationError(
            "Request body must be multipart form data or a JSON object.", code="invalid_body"
        ) from exc
    if not isinstance(body, dict):
        raise SubmissionValidationError("Request body must be multipart form data or a JSON object.", code="invalid_body")
    return raw_submission_from_json(body)


def _response_from(result: CanonicalScreeningResult, **extra: Any) -> ScreeningResponse:
    return ScreeningResponse.model_validate({**result.model_dump(), **extra})


@router.post("/screen", response_model=ScreeningResponse)
async def screen_resume(request: Request, background_tasks: BackgroundTasks):
    client_key = client_key_from_headers(request.headers)
    try:
        get_submission_limiter().hit(client_key)
    except SubmissionRateLimitExceeded as exc:
        logger.info("submission_rate_limited client=%s retry_after=%s", mask_client_key(client_key), exc.retry_after)
        return _rate_limited_response(exc)

    try:
        raw = await _read_submission(request)
        if is_honeypot_triggered(raw):
            logger.info("submission_honeypot_triggered client=%s", mask_client_key(client_key))
            return _response_from(honeypot_result())
        submission = validate_submission(raw, max_file_bytes=settings.resume_max_bytes)
    except SubmissionValidationError as exc:
        logger.info("submission_invalid code=%s client=%s", exc.code, mask_client_key(client_key))
        return _error_response(exc.status_code, str(exc), exc.code)

    service = get_screening_service()
    try:
        receipt = await asyncio.to_thread(service.screen, submission)
    except ScoringError as exc:
        logger.error(
            "screening_failed code=%s email=%s: %s",
            exc.code,
            mask_email(submission.email),
            exc,
        )
        return _error_response(exc.status_code, exc.user_message, exc.code)

    if receipt.candidate_id is not None:
        background_tasks.add_task(service.notify_candidate, receipt.candidate_id)

    return _response_from(receipt.result, candidate_id=receipt.candidate_id, source=receipt.source)
