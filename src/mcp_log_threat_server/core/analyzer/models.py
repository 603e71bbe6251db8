"""Contextual analyzer models and configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from numbers import Real
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..models import LogFormat, RawFinding


class AnalyzerUnavailableError(RuntimeError):
    """The analyzer cannot run at all (no credentials, client library missing)."""


class AnalyzerFinding(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str | None = Field(default=None, description="Short title of the threat.")
    description: str | None = Field(
        default=None, description="What happened and why it is suspicious."
    )
    severity: str | None = Field(
        default=None, description="One of CRITICAL, HIGH, MEDIUM, LOW, INFO."
    )
    category: str | None = Field(
        default=None,
        description="Threat category, e.g. SQL_INJECTION, BRUTE_FORCE, RECONNAISSANCE.",
    )
    line_number: int | None = Field(
        default=None,
        validation_alias=AliasChoices("line_number", "lineNumber"),
        description="1-based log line the finding refers to, if any.",
    )
    recommendation: str | None = Field(default=None, description="Suggested next step.")
    confidence: float | None = Field(default=None, description="0..1 confidence.")
    mitre_tactic: str | None = Field(
        default=None, validation_alias=AliasChoices("mitre_tactic", "mitreTactic")
    )
    mitre_technique: str | None = Field(
        default=None, validation_alias=AliasChoices("mitre_technique", "mitreTechnique")
    )

    @field_validator("line_number", mode="before")
    @classmethod
    def _coerce_line_number(cls, value: Any) -> int | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return None

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float | None:
        if isinstance(value, bool) or not isinstance(value, Real):
            return None
        return float(value)

    @field_validator(
        "title",
        "description",
        "severity",
        "category",
        "recommendation",
        "mitre_tactic",
        "mitre_technique",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)


class AnalyzerResponse(BaseModel):
    findings: list[AnalyzerFinding] = Field(default_factory=list)
    summary: str | None = Field(default=None, description="Short overall assessment.")
    false_positive_line_numbers: list[int] = Field(
        default_factory=list,
        description="Lines whose pattern-scan findings are false positives.",
    )


@dataclass(frozen=True, slots=True)
class AnalyzerRequest:
    """Input handed to an analyzer for one job."""

    source_path: str
    total_lines: int
    detected_format: LogFormat
    fast_findings: list[RawFinding]


@dataclass(frozen=True, slots=True)
class AnalyzerResult:
    findings: list[RawFinding] = field(default_factory=list)
    summary: str | None = None
    false_positive_line_numbers: list[int] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AnalyzerConfig:
    model: str = "gemini-2.5-flash-lite"
    temperature: float = 0.0
    max_retries: int = 3

    # Secrets only; addresses stay visible so the model can correlate sources.
    redact: bool = True

    chunk_max_chars: int = 12000
    chunk_overlap_lines: int = 5


MODEL_ENV = "LOG_THREAT_ANALYZER_MODEL"


def resolve_analyzer_config(cfg: AnalyzerConfig | None) -> AnalyzerConfig:
    """Return config with optional env overrides applied."""
    if cfg is None:
        cfg = AnalyzerConfig()

    model = (os.getenv(MODEL_ENV) or "").strip()
    if not model or model == cfg.model:
        return cfg
    return replace(cfg, model=model)
