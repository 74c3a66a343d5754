from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from screener.schemas.screening import CanonicalScreeningResult, ResumeUpload, SubmissionInput

# Multipart keys expected by the scoring workflow; the form posts them verbatim.
FIELD_RESUME = "Resume_PDF_only_"
FIELD_EMAIL = "Email Address"
FIELD_FULL_NAME = "Full Name"
FIELD_JOB_DESCRIPTION = "job_description"
FIELD_HONEYPOT = "website"

MAX_FULL_NAME_CHARS = 200
MAX_EMAIL_CHARS = 320
MAX_JOB_DESCRIPTION_CHARS = 10000
MAX_RESUME_TEXT_CHARS = 50000
DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024

PDF_MAGIC = b"%PDF-"
PDF_CONTENT_TYPE = "application/pdf"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PLACEHOLDER_EMAILS = {"fallback@email.com", "test@test.com", "example@example.com"}


class SubmissionValidationError(ValueError):
    status_code = 400

    def __init__(self, message: str, *, code: str):
        super().__init__(message)
        self.code = code


@dataclass
class RawSubmission:
    full_name: str = ""
    email: str = ""
    job_description: str = ""
    honeypot: str = ""
    resume_file: ResumeUpload | None = None
    resume_text: str | None = None
    is_multipart: bool = True


def _text(value: Any) -> str:
    if value is None or not isinstance(value, str):
        return ""
    return value.strip()


def raw_submission_from_json(body: dict[str, Any]) -> RawSubmission:
    return RawSubmission(
        full_name=_text(body.get("fullName") or body.get(FIELD_FULL_NAME)),
        email=_text(body.get("email") or body.get(FIELD_EMAIL)),
        job_description=_text(body.get("jobDescription") or body.get(FIELD_JOB_DESCRIPTION)),
        honeypot=_text(body.get(FIELD_HONEYPOT)),
        resume_text=_text(body.get("resumeText")) or None,
        is_multipart=False,
    )


def is_honeypot_triggered(raw: RawSubmission) -> bool:
    return bool(raw.honeypot)


def honeypot_result() -> CanonicalScreeningResult:
    """Neutral result returned to bots so the detection is not revealed."""
    return CanonicalScreeningResult(
        overall_score=0,
        verdict="Hold",
        normalized_verdict="Hold",
        confidence=0,
        summary="Application received and under review.",
        matched_skills=[],
        years_relevant_experience=0,
        short_reason="Application received and under review.",
        recommended_next_steps=["We will contact you if there's a match."],
    )


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def _file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def _validate_resume_file(upload: ResumeUpload | None, max_file_bytes: int) -> None:
    if upload is None or (not upload.filename and not upload.content):
        raise SubmissionValidationError("Please upload a PDF resume.", code="missing_resume")

    mime = upload.content_type.split(";")[0].strip().lower()
    if _file_extension(upload.filename) != "pdf" or mime != PDF_CONTENT_TYPE:
        raise SubmissionValidationError("Please upload a PDF resume only.", code="invalid_file_type")

    if upload.size > max_file_bytes:
        raise SubmissionValidationError(
            f"Resume file too large. Maximum size is {max_file_bytes // (1024 * 1024)}MB.",
            code="file_too_large",
        )

    if not upload.content.startswith(PDF_MAGIC):
        raise SubmissionValidationError("File signature does not match .pdf content.", code="invalid_file_type")


def validate_submission(raw: RawSubmission, *, max_file_bytes: int = DEFAULT_MAX_FILE_BYTES) -> SubmissionInput:
    """Check a submission rule by rule; the first failing rule is reported."""
    missing = [
        label
        for label, value in (
            (FIELD_FULL_NAME, raw.full_name),
            (FIELD_EMAIL, raw.email),
            (FIELD_JOB_DESCRIPTION, raw.job_description),
        )
        if not value
    ]
    if missing:
        raise SubmissionValidationError(f"Missing required fields: {', '.join(missing)}", code="missing_fields")

    if not is_valid_email(raw.email):
        raise SubmissionValidationError("Invalid email address format", code="invalid_email")
    if raw.email.lower() in _PLACEHOLDER_EMAILS:
        raise SubmissionValidationError("Please use a real email address.", code="placeholder_email")

    too_long = [
        label
        for label, value, limit in (
            (FIELD_FULL_NAME, raw.full_name, MAX_FULL_NAME_CHARS),
            (FIELD_EMAIL, raw.email, MAX_EMAIL_CHARS),
            (FIELD_JOB_DESCRIPTION, raw.job_description, MAX_JOB_DESCRIPTION_CHARS),
        )
        if len(value) > limit
    ]
    if too_long:
        raise SubmissionValidationError(
            f"Input exceeds maximum allowed length: {', '.join(too_long)}",
            code="input_too_long",
        )

    if raw.is_multipart:
        _validate_resume_file(raw.resume_file, max_file_bytes)
        return SubmissionInput(
            full_name=raw.full_name,
            email=raw.email,
            job_description=raw.job_description,
            resume_file=raw.resume_file,
        )

    if not raw.resume_text:
        raise SubmissionValidationError("Please provide the resume text.", code="missing_resume")
    if len(raw.resume_text) > MAX_RESUME_TEXT_CHARS:
        raise SubmissionValidationError("Input exceeds maximum allowed length: resumeText", code="input_too_long")
    return SubmissionInput(
        full_name=raw.full_name,
        email=raw.email,
        job_description=raw.job_description,
        resume_text=raw.resume_text,
    )
