from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NormalizedVerdict = Literal["Interview", "Hold", "Reject", "Unknown"]
EmailType = Literal["interview", "rejection"]
ScoringSource = Literal["webhook", "ai_fallback"]
NotificationStatus = Literal["sent", "skipped", "already_sent", "not_eligible"]


class ResumeUpload(BaseModel):
    filename: str = Field(default="", max_length=255)
    content_type: str = Field(default="", max_length=120)
    content: bytes = b""

    @property
    def size(self) -> int:
        return len(self.content)


class SubmissionInput(BaseModel):
    full_name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=1, max_length=320)
    job_description: str = Field(min_length=1, max_length=10000)
    resume_file: ResumeUpload | None = None
    resume_text: str | None = Field(default=None, max_length=50000)


class CanonicalScreeningResult(BaseModel):
    """Single internal result shape, whichever upstream producer scored the resume."""

    model_config = ConfigDict(populate_by_name=True)

    overall_score: int = Field(ge=0, le=100)
    verdict: str
    normalized_verdict: NormalizedVerdict = Field(alias="normalizedVerdict")
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    summary: str
    matched_skills: list[str] = Field(default_factory=list)
    years_relevant_experience: float = Field(default=0.0, ge=0.0)
    short_reason: str
    recommended_next_steps: list[str] = Field(default_factory=list)
    calendar_link: str | None = None
    email_draft: str | None = None


class ScreeningResponse(CanonicalScreeningResult):
    candidate_id: str | None = None
    source: ScoringSource | None = None


class RawScreeningPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    overall_score: float = Field(ge=0, le=100)
    verdict: str
    confidence: float | None = Field(default=None, ge=0)
    summary: str | None = None
    matched_skills: list[str] | None = None
    years_relevant_experience: float | None = Field(default=None, ge=0)
    short_reason: str
    recommended_next_steps: str | list[str]
    calendar_link: str | None = None
    email_draft: str | None = None


class RawWebhookResponse(RawScreeningPayload):
    """Payload produced by the scoring workflow webhook."""


class RawAiToolResponse(RawScreeningPayload):
    """Arguments of the `suggest_screening_result` tool call; confidence is a 0-1 fraction."""

    confidence: float | None = Field(default=None, ge=0, le=1)


class CandidateRecord(BaseModel):
    id: str
    created_at: datetime
    name: str
    email: str
    role: str
    score: int = Field(ge=0, le=100)
    verdict: str
    normalized_verdict: NormalizedVerdict
    confidence: float = 0.0
    summary: str = ""
    matched_skills: list[str] = Field(default_factory=list)
    years_relevant_experience: float = 0.0
    short_reason: str = ""
    recommended_next_steps: list[str] = Field(default_factory=list)
    calendar_link: str | None = None
    email_draft: str | None = None
    scoring_source: ScoringSource = "webhook"
    interview_email_sent: bool = False
    rejection_email_sent: bool = False

    def to_result(self) -> CanonicalScreeningResult:
        return CanonicalScreeningResult(
            overall_score=self.score,
            verdict=self.verdict,
            normalized_verdict=self.normalized_verdict,
            confidence=self.confidence,
            summary=self.summary or self.short_reason,
            matched_skills=list(self.matched_skills),
            years_relevant_experience=self.years_relevant_experience,
            short_reason=self.short_reason,
            recommended_next_steps=list(self.recommended_next_steps),
            calendar_link=self.calendar_link,
            email_draft=self.email_draft,
        )


class CandidateListResponse(BaseModel):
    candidates: list[CandidateRecord]
    total: int


class EmailDispatchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    overall_score: float = Field(ge=0, le=100)
    verdict: str = Field(default="", max_length=200)
    normalized_verdict: NormalizedVerdict | None = Field(default=None, alias="normalizedVerdict")
    short_reason: str = Field(default="", max_length=5000)
    recommended_next_steps: str | list[str] = Field(default_factory=list)


class EmailDispatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candidate_name: str = Field(alias="candidateName", min_length=1, max_length=200)
    candidate_email: str = Field(alias="candidateEmail", min_length=3, max_length=320)
    candidate_id: str | None = Field(default=None, alias="candidateId", max_length=64)
    result: EmailDispatchResult


class EmailDispatchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    skipped: bool = False
    status: NotificationStatus
    email_type: EmailType | None = Field(default=None, alias="emailType")
    email_id: str | None = Field(default=None, alias="emailId")
    message: str = ""
