from __future__ import annotations

import hashlib
import html
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from functools import lru_cache

from screener.core.candidate_store import CandidateStore, get_candidate_store
from screener.integrations.email import EmailClient, EmailDeliveryError, get_email_client
from screener.schemas.screening import CandidateRecord, CanonicalScreeningResult, EmailType, NotificationStatus
from screener.utils.redact import mask_email

logger = logging.getLogger(__name__)

INTERVIEW_SCORE_THRESHOLD = 70
REJECTION_SCORE_THRESHOLD = 40

SUBJECTS: dict[str, str] = {
    "interview": "Great news! You've been selected for an interview",
    "rejection": "Application Status Update",
}


class NotificationFailure(RuntimeError):
    def __init__(self, message: str, *, code: str = "email_failed", status_code: int = 502):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


@dataclass(frozen=True)
class NotificationOutcome:
    status: NotificationStatus
    email_type: EmailType | None = None
    email_id: str | None = None
    message: str = ""


def decide_notification(result: CanonicalScreeningResult) -> EmailType | None:
    if result.normalized_verdict == "Interview" or result.overall_score >= INTERVIEW_SCORE_THRESHOLD:
        return "interview"
    if result.normalized_verdict == "Reject" or result.overall_score < REJECTION_SCORE_THRESHOLD:
        return "rejection"
    return None


def _steps_html(steps: list[str]) -> str:
    return "".join(f"<li>{html.escape(step)}</li>" for step in steps)


def render_interview_email(name: str, result: CanonicalScreeningResult) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h1 style="color: #10b981;">Congratulations, {html.escape(name)}!</h1>
      <p>We're excited to inform you that you've been selected to move forward in our hiring process.</p>
      <div style="background: #f0fdf4; padding: 16px; border-radius: 8px; margin: 16px 0;">
        <p><strong>Your Score:</strong> {int(result.overall_score)}/100</p>
        <p><strong>Assessment:</strong> {html.escape(result.short_reason)}</p>
      </div>
      <h3>Next Steps:</h3>
      <ul>{_steps_html(result.recommended_next_steps)}</ul>
      <p>We'll be in touch soon with more details about the interview process.</p>
      <p>Best regards,<br>The Hiring Team</p>
    </div>
    """


def render_rejection_email(name: str, result: CanonicalScreeningResult) -> str:
    suggestions = ""
    if result.recommended_next_steps:
        suggestions = (
            "<h3>Suggestions for Future Applications:</h3>"
            f"<ul>{_steps_html(result.recommended_next_steps)}</ul>"
        )
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h1 style="color: #6b7280;">Thank You, {html.escape(name)}</h1>
      <p>We appreciate your interest in joining our team and the time you invested in your application.</p>
      <p>After careful consideration, we've decided to move forward with other candidates whose experience more closely matches our current needs.</p>
      <div style="background: #f9fafb; padding: 16px; border-radius: 8px; margin: 16px 0;">
        <p><strong>Feedback:</strong> {html.escape(result.short_reason)}</p>
      </div>
      {suggestions}
      <p>We encourage you to apply again in the future as new opportunities arise.</p>
      <p>Best wishes,<br>The Hiring Team</p>
    </div>
    """


def render_email(email_type: EmailType, name: str, result: CanonicalScreeningResult) -> tuple[str, str]:
    if email_type == "interview":
        return SUBJECTS["interview"], render_interview_email(name, result)
    return SUBJECTS["rejection"], render_rejection_email(name, result)


class SentGuard:
    """Process-wide claims on sends, keeping at most `max_entries` of the most recent keys."""

    def __init__(self, max_entries: int = 10_000) -> None:
        self._claimed: OrderedDict[tuple[str, str], None] = OrderedDict()
        self._max_entries = max(1, int(max_entries))
        self._lock = threading.Lock()

    def claim(self, key: tuple[str, str]) -> bool:
        with self._lock:
            if key in self._claimed:
                return False
            self._claimed[key] = None
            while len(self._claimed) > self._max_entries:
                self._claimed.popitem(last=False)
            return True

    def release(self, key: tuple[str, str]) -> None:
        with self._lock:
            self._claimed.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._claimed.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._claimed)


def _anonymous_submission_key(email: str, result: CanonicalScreeningResult) -> str:
    material = "|".join(
        [email.strip().lower(), str(result.overall_score), result.verdict, result.short_reason]
    )
    return "anon-" + hashlib.sha256(material.encode("utf-8")).hexdigest()[:24]


def _sent_email_type(record: CandidateRecord) -> EmailType | None:
    if record.interview_email_sent:
        return "interview"
    if record.rejection_email_sent:
        return "rejection"
    return None


_NOT_ELIGIBLE = NotificationOutcome(
    status="not_eligible",
    message="Result is neither interview nor rejection eligible.",
)


class Notifier:
    def __init__(
        self,
        email_client: EmailClient,
        store: CandidateStore | None = None,
        guard: SentGuard | None = None,
    ) -> None:
        self._email_client = email_client
        self._store = store
        self._guard = guard or SentGuard()

    def _skipped(self, email_type: EmailType) -> NotificationOutcome:
        logger.info("candidate_email_skipped reason=not_configured type=%s", email_type)
        return NotificationOutcome(
            status="skipped",
            email_type=email_type,
            message="Email sending is disabled (no RESEND_API_KEY configured)",
        )

    def _send(
        self,
        email_type: EmailType,
        name: str,
        email: str,
        result: CanonicalScreeningResult,
    ) -> NotificationOutcome:
        subject, body = render_email(email_type, name, result)
        try:
            sent = self._email_client.send(to=email, subject=subject, html=body)
        except EmailDeliveryError as exc:
            logger.warning(
                "candidate_email_failed type=%s to=%s status=%s: %s",
                email_type,
                mask_email(email),
                exc.status_code,
                exc,
            )
            raise NotificationFailure("Failed to send email") from exc
        logger.info("candidate_email_sent type=%s to=%s", email_type, mask_email(email))
        return NotificationOutcome(status="sent", email_type=email_type, email_id=sent.email_id)

    def _load(self, candidate_id: str) -> CandidateRecord:
        if self._store is None:
            raise NotificationFailure("Candidate store is unavailable", code="store_unavailable", status_code=500)
        record = self._store.get_candidate(candidate_id)
        if record is None:
            raise NotificationFailure("Unknown candidate", code="unknown_candidate", status_code=404)
        return record

    def notify(
        self,
        *,
        name: str,
        email: str,
        result: CanonicalScreeningResult,
        candidate_id: str | None = None,
    ) -> NotificationOutcome:
        """Send the email a result calls for.

        With a `candidate_id` the stored record decides everything (recipient,
        result, flags) and the supplied name, email and result are ignored.
        """
        if candidate_id is not None:
            return self.notify_candidate(candidate_id)

        email_type = decide_notification(result)
        if email_type is None:
            return _NOT_ELIGIBLE
        if not self._email_client.configured:
            return self._skipped(email_type)

        guard_key = (_anonymous_submission_key(email, result), email_type)
        if not self._guard.claim(guard_key):
            return NotificationOutcome(status="already_sent", email_type=email_type)
        try:
            return self._send(email_type, name, email, result)
        except NotificationFailure:
            self._guard.release(guard_key)
            raise

    def notify_candidate(self, candidate_id: str) -> NotificationOutcome:
        record = self._load(candidate_id)
        result = record.to_result()
        email_type = decide_notification(result)
        if email_type is None:
            return _NOT_ELIGIBLE

        # One email per candidate, whichever kind went out first.
        sent_type = _sent_email_type(record)
        if sent_type is not None:
            return NotificationOutcome(status="already_sent", email_type=sent_type)
        if not self._email_client.configured:
            return self._skipped(email_type)

        guard_key = (record.id, "candidate")
        if not self._guard.claim(guard_key):
            return NotificationOutcome(status="already_sent", email_type=email_type)
        try:
            # Flags may have flipped between the first read and the claim.
            sent_type = _sent_email_type(self._load(candidate_id))
            if sent_type is not None:
                return NotificationOutcome(status="already_sent", email_type=sent_type)

            outcome = self._send(email_type, record.name, record.email, result)
            if not self._store.mark_email_sent(record.id, email_type):
                logger.info("candidate_email_flag_already_set candidate_id=%s type=%s", record.id, email_type)
            return outcome
        finally:
            self._guard.release(guard_key)


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return Notifier(get_email_client(), get_candidate_store())
