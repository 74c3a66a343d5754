from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import ValidationError

from screener.schemas.screening import (
    CanonicalScreeningResult,
    NormalizedVerdict,
    RawAiToolResponse,
    RawScreeningPayload,
    RawWebhookResponse,
)

_VERDICT_SYNONYMS: dict[str, NormalizedVerdict] = {
    "interview": "Interview",
    "proceed": "Interview",
    "yes": "Interview",
    "hold": "Hold",
    "maybe": "Hold",
    "pending": "Hold",
    "reject": "Reject",
    "no": "Reject",
    "pass": "Reject",
}

# pydantic appends the union member to the location of union errors
_UNION_MEMBER_TAGS = {"str", "list[str]", "float", "int"}

_EMPTY_SUMMARY = "No summary provided."


class ConfidenceScale(str, Enum):
    PERCENT = "percent"
    FRACTION = "fraction"


@dataclass(frozen=True)
class ResponseShape:
    """Describes one upstream producer: its payload contract and its confidence scale."""

    name: str
    model: type[RawScreeningPayload]
    confidence_scale: ConfidenceScale


WEBHOOK_SHAPE = ResponseShape("webhook", RawWebhookResponse, ConfidenceScale.PERCENT)
WEBHOOK_FRACTION_SHAPE = ResponseShape("webhook", RawWebhookResponse, ConfidenceScale.FRACTION)
AI_TOOL_SHAPE = ResponseShape("ai_tool", RawAiToolResponse, ConfidenceScale.FRACTION)


def webhook_shape(scale: str) -> ResponseShape:
    if ConfidenceScale(scale) is ConfidenceScale.FRACTION:
        return WEBHOOK_FRACTION_SHAPE
    return WEBHOOK_SHAPE


@dataclass(frozen=True)
class SchemaViolation:
    path: str
    message: str


@dataclass(frozen=True)
class NormalizeSuccess:
    result: CanonicalScreeningResult
    ok: Literal[True] = True


@dataclass(frozen=True)
class NormalizeFailure:
    violations: tuple[SchemaViolation, ...]
    ok: Literal[False] = False

    @property
    def paths(self) -> list[str]:
        return [violation.path for violation in self.violations]

    def describe(self) -> str:
        return ", ".join(f"{violation.path}: {violation.message}" for violation in self.violations)


NormalizeOutcome = NormalizeSuccess | NormalizeFailure


def normalize_verdict(verdict: Any) -> NormalizedVerdict:
    if verdict is None:
        return "Unknown"
    return _VERDICT_SYNONYMS.get(str(verdict).strip().lower(), "Unknown")


def _unwrap(raw: Any) -> tuple[dict[str, Any] | None, NormalizeFailure | None]:
    payload = raw
    if isinstance(payload, list):
        if len(payload) != 1:
            return None, NormalizeFailure(
                (SchemaViolation("$", f"expected a single-element array, got {len(payload)} elements"),)
            )
        payload = payload[0]
    if not isinstance(payload, dict):
        return None, NormalizeFailure((SchemaViolation("$", "expected a JSON object"),))
    return payload, None


def _violations_from(exc: ValidationError) -> tuple[SchemaViolation, ...]:
    seen: dict[str, str] = {}
    for error in exc.errors():
        parts = [str(part) for part in error.get("loc", ()) if str(part) not in _UNION_MEMBER_TAGS]
        path = ".".join(parts) or "$"
        seen.setdefault(path, str(error.get("msg") or "invalid value"))
    return tuple(SchemaViolation(path, message) for path, message in seen.items())


def _to_percent(value: float | None, scale: ConfidenceScale) -> float:
    if value is None:
        return 0.0
    if scale is ConfidenceScale.FRACTION:
        return round(float(value) * 100.0, 2)
    return round(float(value), 2)


def normalize_response(raw: Any, shape: ResponseShape) -> NormalizeOutcome:
    """Map one upstream payload onto CanonicalScreeningResult.

    Never raises. Every schema violation is reported by its dotted field path
    so the caller can log the full picture while showing the user a generic
    "unexpected response format" message.
    """
    payload, failure = _unwrap(raw)
    if failure is not None:
        return failure
    assert payload is not None

    if payload.get("error"):
        return NormalizeFailure((SchemaViolation("error", str(payload.get("error"))[:300]),))

    try:
        parsed = shape.model.model_validate(payload)
    except ValidationError as exc:
        return NormalizeFailure(_violations_from(exc))

    confidence = _to_percent(parsed.confidence, shape.confidence_scale)
    if confidence > 100.0:
        return NormalizeFailure(
            (SchemaViolation("confidence", f"value exceeds the {shape.confidence_scale.value} scale"),)
        )

    if isinstance(parsed.recommended_next_steps, str):
        next_steps = [parsed.recommended_next_steps]
    else:
        next_steps = list(parsed.recommended_next_steps)

    summary = parsed.summary if parsed.summary and parsed.summary.strip() else parsed.short_reason
    try:
        result = CanonicalScreeningResult(
            overall_score=int(round(parsed.overall_score)),
            verdict=parsed.verdict,
            normalized_verdict=normalize_verdict(parsed.verdict),
            confidence=confidence,
            summary=summary if summary.strip() else _EMPTY_SUMMARY,
            matched_skills=list(parsed.matched_skills or []),
            years_relevant_experience=float(parsed.years_relevant_experience or 0),
            short_reason=parsed.short_reason,
            recommended_next_steps=next_steps,
            calendar_link=parsed.calendar_link or None,
            email_draft=parsed.email_draft or None,
        )
    except ValidationError as exc:
        return NormalizeFailure(_violations_from(exc))
    return NormalizeSuccess(result)
