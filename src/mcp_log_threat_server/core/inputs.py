"""Validation of log file paths handed to the server."""

from __future__ import annotations

import os
from pathlib import Path

from .config import ALLOWED_EXTENSIONS, MAX_FILE_SIZE

BASE_DIR_ENV = "LOG_THREAT_BASE_DIR"


def base_dir() -> Path:
    """Return the resolved base directory for file resources."""
    raw = os.getenv(BASE_DIR_ENV, os.getcwd())
    return Path(raw).resolve()


def safe_resolve(path: str) -> Path:
    """Resolve a path under the configured base directory."""
    base = base_dir()
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = base / p
    p = p.resolve()
    if base not in p.parents and p != base:
        raise ValueError("Path escapes base dir")
    return p


def effective_suffix(path: Path) -> str:
    """Suffix used for allowlist checks (``app.log.gz`` counts as ``.log``)."""
    suffix = path.suffix.lower()
    if suffix == ".gz":
        suffix = path.with_suffix("").suffix.lower()
    return suffix


def validate_log_path(
    path: str | Path,
    *,
    restrict_to_base: bool = False,
    max_size: int = MAX_FILE_SIZE,
) -> Path:
    """Resolve and validate a log file for analysis.

    Raises FileNotFoundError for missing files and ValueError for a
    disallowed extension or a file larger than ``max_size`` bytes.
    """
    p = safe_resolve(str(path)) if restrict_to_base else Path(path).expanduser().resolve()
    if not p.is_file():
        raise FileNotFoundError(f"Log file not found: {p}")

    if effective_suffix(p) not in ALLOWED_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_EXTENSIONS))
        raise ValueError(f"File type not allowed. Allowed: {allowed} (optionally .gz).")

    size = p.stat().st_size
    if size > max_size:
        raise ValueError(f"File too large: {size} bytes (max {max_size}).")
    return p
