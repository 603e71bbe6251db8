"""Small helpers shared by the scanner and the detectors."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime

from .models import ThreatCategory

_IPV4_RE = re.compile(r"\b(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\b")
_ISO_TS_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2}))"
)
_ACCESS_TS_RE = re.compile(r"\[(\d{2}/\w{3}/\d{4}:\d{2}:\d{2}:\d{2}\s[+-]\d{4})\]")
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")
_FRACTION_RE = re.compile(r"\.(\d+)")

# Usernames named in failed-auth messages, most specific first.
_USERNAME_RES = (
    re.compile(r"Failed password for invalid user (\S+) from", re.IGNORECASE),
    re.compile(r"Failed password for (\S+) from", re.IGNORECASE),
    re.compile(r"Login failed for user '?([^'\s]+)'? from", re.IGNORECASE),
    re.compile(r"invalid user (\S+)", re.IGNORECASE),
    re.compile(r"\b(?:user|username|login)[=:]\s*\"?([^\s\",;&]+)", re.IGNORECASE),
)

DEFAULT_TRUNCATE = 500


def compute_fingerprint(
    category: ThreatCategory | str,
    line_number: int | None,
    content: str | None,
) -> str:
    """Deterministic 16-hex-char identity for a finding."""
    cat = category.value if isinstance(category, ThreatCategory) else str(category)
    line = "" if line_number is None else str(line_number)
    payload = f"{cat}:{line}:{content or ''}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def extract_ip(line: str) -> str | None:
    """Return the first IPv4-shaped token in the line."""
    m = _IPV4_RE.search(line)
    return m.group(1) if m else None


def _parse_iso(value: str) -> datetime | None:
    value = value.replace("Z", "+00:00")
    value = _COMPACT_OFFSET_RE.sub(r"\1:\2", value)
    # fromisoformat accepts at most microsecond precision.
    value = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def extract_timestamp(line: str) -> int | None:
    """Return the first recognizable timestamp as epoch milliseconds.

    Supports ISO-8601 with an explicit offset and the access-log bracket form
    ``[10/Oct/2023:13:55:36 +0000]``.
    """
    m = _ISO_TS_RE.search(line)
    if m:
        ts = _parse_iso(m.group(1))
        if ts is not None:
            return round(ts.timestamp() * 1000)

    m = _ACCESS_TS_RE.search(line)
    if m:
        try:
            ts = datetime.strptime(m.group(1), "%d/%b/%Y:%H:%M:%S %z")
        except ValueError:
            return None
        return round(ts.timestamp() * 1000)

    return None


def extract_username(line: str) -> str | None:
    """Return the account name targeted by a failed-auth line, if any."""
    for rx in _USERNAME_RES:
        m = rx.search(line)
        if m:
            return m.group(1)
    return None


def truncate_line(line: str, max_length: int = DEFAULT_TRUNCATE) -> str:
    if len(line) <= max_length:
        return line
    return line[:max_length] + "..."
