"""Orchestrator configuration with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any

from .context import DEFAULT_THRESHOLDS, DetectionThresholds

ANALYZER_TIMEOUT_ENV = "LOG_THREAT_ANALYZER_TIMEOUT"
STALL_THRESHOLD_ENV = "LOG_THREAT_STALL_THRESHOLD"

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = frozenset({".txt", ".log", ".csv", ".jsonl"})


@dataclass(frozen=True, slots=True)
class OrchestratorConfig:
    # Wall-clock limit for one analyzer invocation (slot wait excluded).
    analyzer_timeout_s: float = 300.0

    stall_check_interval_s: float = 5 * 60
    stall_threshold_s: float = 15 * 60

    thresholds: DetectionThresholds = field(default=DEFAULT_THRESHOLDS)


def _positive_float(name: str) -> float | None:
    env = os.getenv(name)
    if env is None or env == "":
        return None
    try:
        value = float(env)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def resolve_orchestrator_config(cfg: OrchestratorConfig | None) -> OrchestratorConfig:
    """Return config with optional env overrides applied."""
    if cfg is None:
        cfg = OrchestratorConfig()

    changes: dict[str, Any] = {}
    timeout = _positive_float(ANALYZER_TIMEOUT_ENV)
    if timeout is not None:
        changes["analyzer_timeout_s"] = timeout
    stall = _positive_float(STALL_THRESHOLD_ENV)
    if stall is not None:
        changes["stall_threshold_s"] = stall

    if not changes:
        return cfg
    return replace(cfg, **changes)
