from __future__ import annotations

import logging
import re
from io import BytesIO

from pypdf import PdfReader

from screener.schemas.screening import ResumeUpload

logger = logging.getLogger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F-\x9F]")
_WHITESPACE_RE = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", _CONTROL_CHARS_RE.sub(" ", text)).strip()


def _pdf_text(content: bytes) -> str:
    try:
        reader = PdfReader(BytesIO(content))
        parts = [(page.extract_text() or "").strip() for page in reader.pages]
    except Exception as exc:  # noqa: BLE001 - fall back to raw byte stripping
        logger.info("resume_pdf_parse_failed: %s", exc)
        return ""
    return _collapse(" ".join(part for part in parts if part))


def _byte_text(content: bytes) -> str:
    return _collapse(content.decode("utf-8", errors="replace").replace("\ufffd", " "))


def placeholder_note(upload: ResumeUpload) -> str:
    name = upload.filename or "resume.pdf"
    return (
        f"[PDF Resume uploaded: {name}, Size: {upload.size} bytes. "
        "Unable to extract text - please ensure the PDF contains searchable text, not just images.]"
    )


def extract_resume_text(upload: ResumeUpload, *, min_chars: int = 100) -> str:
    """Best-effort plain text for the fallback prompt.

    Uses the PDF text layer when pypdf can read it, otherwise strips the raw
    bytes down to printable text. Anything shorter than `min_chars` is replaced
    by a placeholder note naming the file, so binary noise never reaches the model.
    """
    text = _pdf_text(upload.content)
    if len(text) < min_chars:
        text = _byte_text(upload.content)
    if len(text) < min_chars:
        return placeholder_note(upload)
    return text
