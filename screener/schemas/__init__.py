from .screening import (
    CandidateListResponse,
    CandidateRecord,
    CanonicalScreeningResult,
    EmailDispatchRequest,
    EmailDispatchResponse,
    EmailDispatchResult,
    EmailType,
    NormalizedVerdict,
    RawAiToolResponse,
    RawWebhookResponse,
    ResumeUpload,
    ScoringSource,
    ScreeningResponse,
    SubmissionInput,
)

__all__ = [
    "CandidateListResponse",
    "CandidateRecord",
    "CanonicalScreeningResult",
    "EmailDispatchRequest",
    "EmailDispatchResponse",
    "EmailDispatchResult",
    "EmailType",
    "NormalizedVerdict",
    "RawAiToolResponse",
    "RawWebhookResponse",
    "ResumeUpload",
    "ScoringSource",
    "ScreeningResponse",
    "SubmissionInput",
]
