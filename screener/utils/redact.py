from __future__ import annotations


def mask_email(email: str | None) -> str:
    value = (email or "").strip()
    if not value:
        return ""
    return f"{value[:3]}***"


def mask_client_key(key: str | None) -> str:
    value = (key or "").strip()
    if len(value) <= 10:
        return value
    return f"{value[:10]}..."
