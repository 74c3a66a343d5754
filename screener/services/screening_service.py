from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from functools import lru_cache

from screener.core.candidate_store import CandidateStore, get_candidate_store
from screener.schemas.screening import CanonicalScreeningResult, ScoringSource, SubmissionInput
from screener.services.notifier import NotificationFailure, Notifier, get_notifier
from screener.services.scoring_gateway import ScoringGateway, get_scoring_gateway
from screener.utils.redact import mask_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScreeningReceipt:
    result: CanonicalScreeningResult
    source: ScoringSource
    candidate_id: str | None


class ScreeningService:
    """Score, then persist. Notification runs separately once the response is out."""

    def __init__(self, gateway: ScoringGateway, store: CandidateStore, notifier: Notifier) -> None:
        self._gateway = gateway
        self._store = store
        self._notifier = notifier

    def screen(self, submission: SubmissionInput) -> ScreeningReceipt:
        outcome = self._gateway.score(submission)

        candidate_id: str | None = None
        try:
            record = self._store.create_candidate(submission, outcome.result, source=outcome.source)
            candidate_id = record.id
        except (sqlite3.Error, OSError) as exc:
            logger.error("candidate_persist_failed email=%s: %s", mask_email(submission.email), exc)

        logger.info(
            "screening_completed source=%s score=%s verdict=%s candidate_id=%s",
            outcome.source,
            outcome.result.overall_score,
            outcome.result.normalized_verdict,
            candidate_id,
        )
        return ScreeningReceipt(result=outcome.result, source=outcome.source, candidate_id=candidate_id)

    def notify_candidate(self, candidate_id: str) -> None:
        try:
            outcome = self._notifier.notify_candidate(candidate_id)
        except NotificationFailure as exc:
            logger.warning("candidate_notify_failed candidate_id=%s code=%s: %s", candidate_id, exc.code, exc)
            return
        except Exception as exc:  # noqa: BLE001 - runs after the response; must not raise
            logger.exception("candidate_notify_crashed candidate_id=%s: %s", candidate_id, exc)
            return
        logger.info("candidate_notify_done candidate_id=%s status=%s", candidate_id, outcome.status)


@lru_cache(maxsize=1)
def get_screening_service() -> ScreeningService:
    return ScreeningService(get_scoring_gateway(), get_candidate_store(), get_notifier())
