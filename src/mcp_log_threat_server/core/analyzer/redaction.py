"""Redaction helpers for analyzer prompts."""

from __future__ import annotations

import re

_EMAIL_RE = re.compile(r"(?i)\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b")
_IPV4_RE = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")
_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_-]{10,}\.[a-zA-Z0-9_-]{10,}\.[a-zA-Z0-9_-]{10,}\b")
_BEARER_RE = re.compile(r"(?i)\b(bearer|basic)\s+[a-zA-Z0-9._~+/=-]{8,}")
_SECRET_KV_RE = re.compile(
    r"(?i)\b(password|passwd|pwd|secret|api[_-]?key|access[_-]?token|token)=([^\s&\"']+)"
)
_LONG_TOKEN_RE = re.compile(r"\b[a-zA-Z0-9_\-]{32,}\b")


def redact_text(text: str, *, ips: bool = False) -> str:
    """Redact credentials and personal data from log text.

    Source addresses are kept unless ``ips`` is true; they are the main key
    for correlating events across lines.
    """
    text = _JWT_RE.sub("<REDACTED_JWT>", text)
    text = _BEARER_RE.sub(lambda m: f"{m.group(1)} <REDACTED_TOKEN>", text)
    text = _SECRET_KV_RE.sub(lambda m: f"{m.group(1)}=<REDACTED_SECRET>", text)
    text = _EMAIL_RE.sub("<REDACTED_EMAIL>", text)
    if ips:
        text = _IPV4_RE.sub("<REDACTED_IP>", text)
    text = _LONG_TOKEN_RE.sub("<REDACTED_TOKEN>", text)
    return text
