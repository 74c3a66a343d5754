from __future__ import annotations

import json
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from screener.core.config import settings
from screener.schemas.screening import (
    CandidateRecord,
    CanonicalScreeningResult,
    EmailType,
    NormalizedVerdict,
    ScoringSource,
    SubmissionInput,
)

ROLE_FALLBACK = "General Application"
ROLE_MAX_CHARS = 100

_EMAIL_FLAG_COLUMNS: dict[str, str] = {
    "interview": "interview_email_sent",
    "rejection": "rejection_email_sent",
}

_SELECT_COLUMNS = """
    id, created_at, name, email, role, score, verdict, normalized_verdict, confidence, summary,
    matched_skills_json, years_relevant_experience, short_reason, recommended_next_steps_json,
    calendar_link, email_draft, scoring_source, interview_email_sent, rejection_email_sent
"""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def role_from_job_description(job_description: str) -> str:
    first_line = (job_description or "").strip().splitlines()[0] if (job_description or "").strip() else ""
    role = first_line.strip()[:ROLE_MAX_CHARS].strip()
    return role or ROLE_FALLBACK


class CandidateStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is not None:
                return self._conn

            directory = os.path.dirname(self._db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            conn = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
                timeout=5,
                isolation_level=None,
            )
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS candidates (
                    id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    role TEXT NOT NULL,
                    score INTEGER NOT NULL,
                    verdict TEXT NOT NULL,
                    normalized_verdict TEXT NOT NULL,
                    confidence REAL NOT NULL DEFAULT 0,
                    summary TEXT NOT NULL DEFAULT '',
                    matched_skills_json TEXT NOT NULL DEFAULT '[]',
                    years_relevant_experience REAL NOT NULL DEFAULT 0,
                    short_reason TEXT NOT NULL DEFAULT '',
                    recommended_next_steps_json TEXT NOT NULL DEFAULT '[]',
                    calendar_link TEXT,
                    email_draft TEXT,
                    scoring_source TEXT NOT NULL,
                    interview_email_sent INTEGER NOT NULL DEFAULT 0,
                    rejection_email_sent INTEGER NOT NULL DEFAULT 0
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_candidates_created_at
                ON candidates (created_at);
                """
            )
            self._conn = conn
            return conn

    def init(self) -> None:
        self._get_connection()

    @staticmethod
    def _row_to_record(row: tuple[Any, ...]) -> CandidateRecord:
        return CandidateRecord(
            id=row[0],
            created_at=datetime.fromisoformat(row[1]),
            name=row[2],
            email=row[3],
            role=row[4],
            score=int(row[5]),
            verdict=row[6],
            normalized_verdict=row[7],
            confidence=float(row[8] or 0),
            summary=row[9] or "",
            matched_skills=json.loads(row[10]) if row[10] else [],
            years_relevant_experience=float(row[11] or 0),
            short_reason=row[12] or "",
            recommended_next_steps=json.loads(row[13]) if row[13] else [],
            calendar_link=row[14],
            email_draft=row[15],
            scoring_source=row[16],
            interview_email_sent=bool(row[17]),
            rejection_email_sent=bool(row[18]),
        )

    def create_candidate(
        self,
        submission: SubmissionInput,
        result: CanonicalScreeningResult,
        *,
        source: ScoringSource,
    ) -> CandidateRecord:
        conn = self._get_connection()
        record = CandidateRecord(
            id=uuid.uuid4().hex,
            created_at=_utc_now(),
            name=submission.full_name,
            email=submission.email,
            role=role_from_job_description(submission.job_description),
            score=result.overall_score,
            verdict=result.verdict,
            normalized_verdict=result.normalized_verdict,
            confidence=result.confidence,
            summary=result.summary,
            matched_skills=list(result.matched_skills),
            years_relevant_experience=result.years_relevant_experience,
            short_reason=result.short_reason,
            recommended_next_steps=list(result.recommended_next_steps),
            calendar_link=result.calendar_link,
            email_draft=result.email_draft,
            scoring_source=source,
        )
        with self._lock:
            conn.execute(
                """
                INSERT INTO candidates (
                    id, created_at, name, email, role, score, verdict, normalized_verdict, confidence,
                    summary, matched_skills_json, years_relevant_experience, short_reason,
                    recommended_next_steps_json, calendar_link, email_draft, scoring_source
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.created_at.isoformat(),
                    record.name,
                    record.email,
                    record.role,
                    record.score,
                    record.verdict,
                    record.normalized_verdict,
                    record.confidence,
                    record.summary,
                    json.dumps(record.matched_skills, ensure_ascii=False),
                    record.years_relevant_experience,
                    record.short_reason,
                    json.dumps(record.recommended_next_steps, ensure_ascii=False),
                    record.calendar_link,
                    record.email_draft,
                    record.scoring_source,
                ),
            )
        return record

    def get_candidate(self, candidate_id: str) -> CandidateRecord | None:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM candidates WHERE id = ?",
                (candidate_id,),
            ).fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def list_candidates(
        self,
        *,
        role: str | None = None,
        min_score: int = 0,
        verdict: NormalizedVerdict | None = None,
        limit: int = 100,
    ) -> list[CandidateRecord]:
        clauses = ["score >= ?"]
        params: list[Any] = [int(min_score)]
        if role:
            clauses.append("role = ?")
            params.append(role)
        if verdict:
            clauses.append("normalized_verdict = ?")
            params.append(verdict)
        params.append(int(limit))

        conn = self._get_connection()
        with self._lock:
            rows = conn.execute(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM candidates
                WHERE {' AND '.join(clauses)}
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def mark_email_sent(self, candidate_id: str, email_type: EmailType) -> bool:
        """Flip one email flag from false to true. Returns False if it was already set."""
        column = _EMAIL_FLAG_COLUMNS[email_type]
        conn = self._get_connection()
        with self._lock:
            cursor = conn.execute(
                f"UPDATE candidates SET {column} = 1 WHERE id = ? AND {column} = 0",
                (candidate_id,),
            )
        return cursor.rowcount == 1

    def clear(self) -> None:
        conn = self._get_connection()
        with self._lock:
            conn.execute("DELETE FROM candidates")


@lru_cache(maxsize=1)
def get_candidate_store() -> CandidateStore:
    return CandidateStore(settings.candidates_db_path)
