from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

import httpx

from screener.core.config import settings
from screener.utils.redact import mask_email

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class EmailSendResult:
    email_id: str | None


class EmailClient:
    """Transactional email over the Resend HTTP API."""

    def __init__(
        self,
        *,
        api_key: str | None,
        api_url: str,
        sender: str,
        timeout_s: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._api_url = api_url
        self._sender = sender
        self._timeout_s = timeout_s
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def send(self, *, to: str, subject: str, html: str) -> EmailSendResult:
        if not self.configured:
            raise EmailDeliveryError("Email provider is not configured")

        payload = {"from": self._sender, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            with httpx.Client(timeout=self._timeout_s, transport=self._transport) as client:
                response = client.post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Email provider unreachable: {exc}") from exc

        if not response.is_success:
            raise EmailDeliveryError(
                f"Email provider returned {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}
        email_id = body.get("id") if isinstance(body, dict) else None
        logger.info("email_sent to=%s id=%s", mask_email(to), email_id)
        return EmailSendResult(email_id=email_id)


@lru_cache(maxsize=1)
def get_email_client() -> EmailClient:
    return EmailClient(
        api_key=settings.email_api_key,
        api_url=settings.email_api_url,
        sender=settings.email_from,
        timeout_s=settings.email_timeout_s,
    )
