from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    log_level: str
    sentry_dsn: str | None
    rate_limit: str
    rate_limit_enabled: bool
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    cors_allow_credentials: bool
    submission_rate_limit_max: int
    submission_rate_limit_window_s: int
    submission_rate_limit_backend: str
    submission_rate_limit_db_path: str
    resume_max_bytes: int
    resume_min_text_chars: int
    scoring_webhook_url: str | None
    scoring_webhook_timeout_s: float
    scoring_webhook_confidence_scale: str
    ai_api_key: str | None
    ai_base_url: str | None
    ai_model: str
    ai_timeout_s: float
    calendar_base_url: str
    candidates_db_path: str
    email_api_key: str | None
    email_api_url: str
    email_from: str
    email_timeout_s: float
    notify_auth_mode: str
    notify_api_token: str | None


settings = Settings(
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
            "http://localhost:3000",
        ],
    ),
    cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX"),
    cors_allow_credentials=_get_env_bool("CORS_ALLOW_CREDENTIALS", False),
    submission_rate_limit_max=_get_env_int("SUBMISSION_RATE_LIMIT_MAX", 5),
    submission_rate_limit_window_s=_get_env_int("SUBMISSION_RATE_LIMIT_WINDOW_S", 3600),
    submission_rate_limit_backend=(_get_env("SUBMISSION_RATE_LIMIT_BACKEND", "memory") or "memory").strip().lower(),
    submission_rate_limit_db_path=_get_env("SUBMISSION_RATE_LIMIT_DB_PATH", "data/submission_rate_limit.db")
    or "data/submission_rate_limit.db",
    resume_max_bytes=_get_env_int("RESUME_MAX_BYTES", 10 * 1024 * 1024),
    resume_min_text_chars=_get_env_int("RESUME_MIN_TEXT_CHARS", 100),
    scoring_webhook_url=_get_env("SCORING_WEBHOOK_URL"),
    scoring_webhook_timeout_s=_get_env_float("SCORING_WEBHOOK_TIMEOUT_S", 60.0),
    scoring_webhook_confidence_scale=(_get_env("SCORING_WEBHOOK_CONFIDENCE_SCALE", "percent") or "percent").strip().lower(),
    ai_api_key=_get_env("AI_GATEWAY_API_KEY") or _get_env("OPENAI_API_KEY"),
    ai_base_url=_get_env("AI_GATEWAY_URL") or _get_env("OPENAI_BASE_URL"),
    ai_model=(_get_env("AI_MODEL", "gpt-4o-mini") or "gpt-4o-mini").strip(),
    ai_timeout_s=_get_env_float("AI_TIMEOUT_S", 60.0),
    calendar_base_url=(_get_env("CALENDAR_BASE_URL", "https://calendly.com/interview") or "").rstrip("/"),
    candidates_db_path=_get_env("CANDIDATES_DB_PATH", "data/candidates.db") or "data/candidates.db",
    email_api_key=_get_env("RESEND_API_KEY"),
    email_api_url=_get_env("EMAIL_API_URL", "https://api.resend.com/emails") or "https://api.resend.com/emails",
    email_from=_get_env("EMAIL_FROM", "ResumeScreen <onboarding@resend.dev>") or "ResumeScreen <onboarding@resend.dev>",
    email_timeout_s=_get_env_float("EMAIL_TIMEOUT_S", 15.0),
    notify_auth_mode=(_get_env("NOTIFY_AUTH_MODE", "public") or "public").strip().lower(),
    notify_api_token=_get_env("NOTIFY_API_TOKEN"),
)

if settings.notify_auth_mode not in {"public", "protected"}:
    raise RuntimeError("NOTIFY_AUTH_MODE must be either 'public' or 'protected'.")

if settings.notify_auth_mode == "protected" and not settings.notify_api_token:
    raise RuntimeError("NOTIFY_AUTH_MODE=protected requires NOTIFY_API_TOKEN to be set.")

if settings.submission_rate_limit_backend not in {"memory", "sqlite"}:
    raise RuntimeError("SUBMISSION_RATE_LIMIT_BACKEND must be either 'memory' or 'sqlite'.")

if settings.scoring_webhook_confidence_scale not in {"percent", "fraction"}:
    raise RuntimeError("SCORING_WEBHOOK_CONFIDENCE_SCALE must be either 'percent' or 'fraction'.")
