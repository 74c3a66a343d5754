from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any
from urllib.parse import quote

import httpx
from openai import APIConnectionError, APIStatusError, OpenAI, OpenAIError, RateLimitError

from screener.core.config import settings
from screener.schemas.screening import CanonicalScreeningResult, ScoringSource, SubmissionInput
from screener.services.resume_text import extract_resume_text
from screener.services.response_normalizer import (
    AI_TOOL_SHAPE,
    ResponseShape,
    normalize_response,
    normalize_verdict,
    webhook_shape,
)
from screener.services.submission_validator import (
    FIELD_EMAIL,
    FIELD_FULL_NAME,
    FIELD_JOB_DESCRIPTION,
    FIELD_RESUME,
    PDF_CONTENT_TYPE,
)
from screener.utils.redact import mask_email

logger = logging.getLogger(__name__)

SCREENING_TOOL_NAME = "suggest_screening_result"

_SYSTEM_PROMPT = """You are an expert HR recruiter and resume screening specialist. Your task is to analyze resumes against job descriptions and provide structured assessments.

When analyzing, consider:
- Skills match (technical and soft skills)
- Years of relevant experience
- Education and certifications
- Career progression
- Red flags (gaps, job hopping, etc.)

Be fair, objective, and focus on job-relevant qualifications."""

SCREENING_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": SCREENING_TOOL_NAME,
        "description": "Return structured resume screening results",
        "parameters": {
            "type": "object",
            "properties": {
                "overall_score": {
                    "type": "integer",
                    "minimum": 0,
                    "maximum": 100,
                    "description": "Overall match score from 0-100",
                },
                "verdict": {
                    "type": "string",
                    "enum": ["Interview", "Hold", "Reject"],
                    "description": "Recommended action",
                },
                "confidence": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 1,
                    "description": "Confidence level from 0 to 1",
                },
                "matched_skills": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of skills that match the job requirements",
                },
                "years_relevant_experience": {
                    "type": "number",
                    "description": "Estimated years of relevant experience",
                },
                "short_reason": {
                    "type": "string",
                    "description": "Brief explanation of the assessment (2-3 sentences)",
                },
                "recommended_next_steps": {
                    "type": "string",
                    "description": "Suggested next steps for this candidate",
                },
                "calendar_link": {
                    "type": "string",
                    "description": "Simulated calendar booking link for interview",
                },
                "email_draft": {
                    "type": "string",
                    "description": "Draft email to send to the candidate based on the verdict",
                },
            },
            "required": [
                "overall_score",
                "verdict",
                "confidence",
                "matched_skills",
                "years_relevant_experience",
                "short_reason",
                "recommended_next_steps",
            ],
            "additionalProperties": False,
        },
    },
}

# name -> accepted JSON types; bool is excluded from numbers explicitly below
WEBHOOK_REQUIRED_FIELDS: tuple[tuple[str, tuple[type, ...]], ...] = (
    ("overall_score", (int, float)),
    ("verdict", (str,)),
    ("confidence", (int, float)),
    ("matched_skills", (list,)),
    ("years_relevant_experience", (int, float)),
    ("short_reason", (str,)),
    ("recommended_next_steps", (str,)),
)


class ScoringError(RuntimeError):
    status_code = 500
    user_message = "An error occurred processing your submission."

    def __init__(self, message: str, *, code: str = "scoring_failed"):
        super().__init__(message)
        self.code = code


class ScoringFailed(ScoringError):
    pass


class ScoringRateLimited(ScoringError):
    user_message = "Temporary processing error - please try again in a few moments."

    def __init__(self, message: str):
        super().__init__(message, code="upstream_rate_limited")


class ScoringServiceUnavailable(ScoringError):
    user_message = "Service temporarily unavailable. Please try again later."

    def __init__(self, message: str):
        super().__init__(message, code="upstream_unavailable")


class ScoringSchemaMismatch(ScoringError):
    user_message = "The screening service returned an unexpected response format."

    def __init__(self, message: str):
        super().__init__(message, code="schema_mismatch")


@dataclass(frozen=True)
class ScoringOutcome:
    result: CanonicalScreeningResult
    source: ScoringSource


def invalid_webhook_fields(payload: dict[str, Any]) -> list[str]:
    invalid: list[str] = []
    for name, types in WEBHOOK_REQUIRED_FIELDS:
        value = payload.get(name)
        if isinstance(value, bool) or not isinstance(value, types):
            invalid.append(name)
    return invalid


def calendar_link_for(full_name: str, base_url: str) -> str:
    slug = re.sub(r"\s+", "-", full_name.strip().lower())
    return f"{base_url}/{quote(slug, safe='-')}"


def email_draft_for(full_name: str, verdict: str, reason: str) -> str:
    parts = full_name.split()
    first_name = parts[0] if parts else full_name
    normalized = normalize_verdict(verdict)

    if normalized == "Interview":
        return (
            f"Dear {first_name},\n\n"
            "Thank you for your application. We were impressed with your qualifications "
            "and would like to invite you for an interview.\n\n"
            f"{reason}\n\n"
            "Please use the calendar link provided to schedule a time that works for you.\n\n"
            "Best regards,\nHiring Team"
        )
    if normalized == "Reject":
        return (
            f"Dear {first_name},\n\n"
            "Thank you for taking the time to apply. After careful consideration, we have decided "
            "to move forward with other candidates whose experience more closely aligns with our current needs.\n\n"
            f"{reason}\n\n"
            "We encourage you to apply for future opportunities that match your qualifications.\n\n"
            "Best regards,\nHiring Team"
        )
    return (
        f"Dear {first_name},\n\n"
        "Thank you for your application. Your profile is currently under review, "
        "and we will be in touch soon with an update.\n\n"
        f"{reason}\n\n"
        "Best regards,\nHiring Team"
    )


class WebhookScorer:
    """Primary path: the scoring workflow webhook. Returns None on any failure."""

    def __init__(
        self,
        url: str,
        *,
        timeout_s: float,
        shape: ResponseShape,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout_s = timeout_s
        self._shape = shape
        self._transport = transport

    def score(self, submission: SubmissionInput) -> CanonicalScreeningResult | None:
        upload = submission.resume_file
        if upload is None:
            return None

        data = {
            FIELD_EMAIL: submission.email,
            FIELD_FULL_NAME: submission.full_name,
            FIELD_JOB_DESCRIPTION: submission.job_description,
        }
        files = {FIELD_RESUME: (upload.filename or "resume.pdf", upload.content, PDF_CONTENT_TYPE)}

        try:
            with httpx.Client(timeout=self._timeout_s, transport=self._transport) as client:
                response = client.post(self._url, data=data, files=files)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("scoring_webhook_failed error=%s: %s", type(exc).__name__, exc)
            return None

        if not response.is_success:
            logger.warning("scoring_webhook_status status=%s body=%s", response.status_code, response.text[:300])
            return None

        try:
            body = response.json()
        except ValueError:
            logger.warning("scoring_webhook_invalid_json body=%s", response.text[:300])
            return None

        if isinstance(body, list) and len(body) == 1:
            body = body[0]
        if not isinstance(body, dict):
            logger.warning("scoring_webhook_invalid_shape type=%s", type(body).__name__)
            return None
        if body.get("error"):
            logger.warning("scoring_webhook_error_payload error=%s", str(body.get("error"))[:300])
            return None

        invalid = invalid_webhook_fields(body)
        if invalid:
            logger.info("scoring_webhook_missing_fields fields=%s", ",".join(invalid))
            return None

        outcome = normalize_response(body, self._shape)
        if not outcome.ok:
            logger.warning("scoring_webhook_schema_mismatch violations=%s", outcome.describe())
            return None
        return outcome.result


class AiScorer:
    """Fallback path: one forced function call against an OpenAI-compatible endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str | None,
        model: str,
        timeout_s: float,
        calendar_base_url: str,
        min_text_chars: int = 100,
        client: Any | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._base_url = base_url
        self._model = model
        self._timeout_s = timeout_s
        self._calendar_base_url = calendar_base_url
        self._min_text_chars = min_text_chars
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = OpenAI(
                api_key=self._api_key,
                base_url=self._base_url or None,
                timeout=self._timeout_s,
                max_retries=0,
            )
        return self._client

    def _resume_text(self, submission: SubmissionInput) -> str:
        if submission.resume_file is not None:
            return extract_resume_text(submission.resume_file, min_chars=self._min_text_chars)
        return submission.resume_text or ""

    def _user_prompt(self, submission: SubmissionInput) -> str:
        return (
            "Analyze this candidate's resume against the job description.\n\n"
            f"CANDIDATE: {submission.full_name} ({submission.email})\n\n"
            f"JOB DESCRIPTION:\n{submission.job_description}\n\n"
            f"RESUME CONTENT:\n{self._resume_text(submission)}\n\n"
            f"Provide your analysis using the {SCREENING_TOOL_NAME} function."
        )

    def _complete(self, submission: SubmissionInput) -> Any:
        try:
            return self._get_client().chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": self._user_prompt(submission)},
                ],
                tools=[SCREENING_TOOL],
                tool_choice={"type": "function", "function": {"name": SCREENING_TOOL_NAME}},
            )
        except RateLimitError as exc:
            raise ScoringRateLimited(f"AI gateway rate limited: {exc}") from exc
        except APIStatusError as exc:
            if exc.status_code == 402:
                raise ScoringServiceUnavailable(f"AI gateway payment required: {exc}") from exc
            raise ScoringFailed(f"AI gateway status {exc.status_code}: {exc}", code="upstream_failed") from exc
        except APIConnectionError as exc:
            raise ScoringFailed(f"AI gateway unreachable: {exc}", code="upstream_failed") from exc
        except OpenAIError as exc:
            raise ScoringFailed(f"AI gateway error: {exc}", code="upstream_failed") from exc

    @staticmethod
    def _tool_arguments(response: Any) -> dict[str, Any]:
        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        tool_calls = getattr(message, "tool_calls", None) or []
        function = getattr(tool_calls[0], "function", None) if tool_calls else None
        if function is None or getattr(function, "name", None) != SCREENING_TOOL_NAME:
            raise ScoringSchemaMismatch("AI response did not contain the screening tool call")
        try:
            arguments = json.loads(getattr(function, "arguments", "") or "")
        except (TypeError, ValueError) as exc:
            raise ScoringSchemaMismatch(f"AI tool arguments are not valid JSON: {exc}") from exc
        if not isinstance(arguments, dict):
            raise ScoringSchemaMismatch("AI tool arguments are not a JSON object")
        return arguments

    def score(self, submission: SubmissionInput) -> CanonicalScreeningResult:
        if not self.configured:
            raise ScoringServiceUnavailable("AI fallback is not configured (missing API key)")

        response = self._complete(submission)
        arguments = self._tool_arguments(response)

        verdict = arguments.get("verdict")
        if not arguments.get("calendar_link") and normalize_verdict(verdict) == "Interview":
            arguments["calendar_link"] = calendar_link_for(submission.full_name, self._calendar_base_url)
        if not arguments.get("email_draft"):
            arguments["email_draft"] = email_draft_for(
                submission.full_name,
                str(verdict or ""),
                str(arguments.get("short_reason") or ""),
            )

        outcome = normalize_response(arguments, AI_TOOL_SHAPE)
        if not outcome.ok:
            raise ScoringSchemaMismatch(f"AI tool arguments violate the contract: {outcome.describe()}")
        return outcome.result


class ScoringGateway:
    def __init__(self, primary: WebhookScorer | None, secondary: AiScorer) -> None:
        self._primary = primary
        self._secondary = secondary

    @property
    def primary_configured(self) -> bool:
        return self._primary is not None

    @property
    def fallback_configured(self) -> bool:
        return self._secondary.configured

    def score(self, submission: SubmissionInput) -> ScoringOutcome:
        if self._primary is not None and submission.resume_file is not None:
            result = self._primary.score(submission)
            if result is not None:
                logger.info("scoring_completed source=webhook email=%s", mask_email(submission.email))
                return ScoringOutcome(result=result, source="webhook")
            logger.info("scoring_falling_back source=ai_fallback email=%s", mask_email(submission.email))

        result = self._secondary.score(submission)
        logger.info("scoring_completed source=ai_fallback email=%s", mask_email(submission.email))
        return ScoringOutcome(result=result, source="ai_fallback")


def build_scoring_gateway() -> ScoringGateway:
    primary = None
    if settings.scoring_webhook_url:
        primary = WebhookScorer(
            settings.scoring_webhook_url,
            timeout_s=settings.scoring_webhook_timeout_s,
            shape=webhook_shape(settings.scoring_webhook_confidence_scale),
        )
    secondary = AiScorer(
        api_key=settings.ai_api_key,
        base_url=settings.ai_base_url,
        model=settings.ai_model,
        timeout_s=settings.ai_timeout_s,
        calendar_base_url=settings.calendar_base_url,
        min_text_chars=settings.resume_min_text_chars,
    )
    return ScoringGateway(primary, secondary)


@lru_cache(maxsize=1)
def get_scoring_gateway() -> ScoringGateway:
    return build_scoring_gateway()
