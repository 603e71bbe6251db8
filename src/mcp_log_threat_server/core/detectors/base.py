"""Detector interfaces and the shared multi-pattern scanner."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

from ..context import DetectionContext
from ..line_utils import compute_fingerprint, truncate_line
from ..models import FindingSource, RawFinding, Severity, ThreatCategory


@dataclass(frozen=True, slots=True)
class PatternRule:
    """One row of a detector's pattern table."""

    regex: re.Pattern[str]
    label: str
    severity: Severity
    confidence: float
    description: str
    mitre_tactic: str | None = None  # falls back to the detector default
    mitre_technique: str | None = None


def rule(
    pattern: str,
    label: str,
    severity: Severity,
    confidence: float,
    description: str,
    *,
    flags: int = re.IGNORECASE,
    mitre_tactic: str | None = None,
    mitre_technique: str | None = None,
) -> PatternRule:
    """Compile a table row (case-insensitive unless flags say otherwise)."""
    return PatternRule(
        regex=re.compile(pattern, flags),
        label=label,
        severity=severity,
        confidence=confidence,
        description=description,
        mitre_tactic=mitre_tactic,
        mitre_technique=mitre_technique,
    )


class LineDetector(ABC):
    """Per-line detector: (normalized line, line number, context) -> findings."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Detector identifier (e.g., 'sql_injection')."""

    @property
    @abstractmethod
    def category(self) -> ThreatCategory:
        """Category of the findings this detector emits."""

    @abstractmethod
    def check_line(
        self, line: str, line_number: int, context: DetectionContext
    ) -> list[RawFinding]:
        """Return zero or more findings for one normalized line."""


class PostPassDetector(ABC):
    """Detector run once after the whole file has been read."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def analyze(self, context: DetectionContext) -> list[RawFinding]:
        """Return findings derived from the fully populated context."""


class PatternDetector(LineDetector):
    """Stateless scanner: every matching table row emits one finding."""

    rules: ClassVar[tuple[PatternRule, ...]] = ()
    title_prefix: ClassVar[str] = ""
    recommendation: ClassVar[str] = ""
    mitre_tactic: ClassVar[str | None] = None
    mitre_technique: ClassVar[str | None] = None

    def check_line(
        self, line: str, line_number: int, context: DetectionContext
    ) -> list[RawFinding]:
        findings: list[RawFinding] = []
        line_content: str | None = None

        for row in self.rules:
            m = row.regex.search(line)
            if not m:
                continue
            if line_content is None:
                line_content = truncate_line(line)
            findings.append(
                self.make_finding(
                    severity=row.severity,
                    title=f"{self.title_prefix}: {row.label}",
                    description=row.description,
                    line_number=line_number,
                    line_content=line_content,
                    matched=m.group(0),
                    confidence=row.confidence,
                    mitre_tactic=row.mitre_tactic,
                    mitre_technique=row.mitre_technique,
                )
            )
        return findings

    def make_finding(
        self,
        *,
        severity: Severity,
        title: str,
        description: str,
        line_number: int | None,
        line_content: str | None,
        matched: str | None,
        confidence: float,
        fingerprint_content: str | None = None,
        category: ThreatCategory | None = None,
        recommendation: str | None = None,
        mitre_tactic: str | None = None,
        mitre_technique: str | None = None,
    ) -> RawFinding:
        """Build a fast-pass finding with this detector's defaults filled in."""
        cat = category or self.category
        content = fingerprint_content if fingerprint_content is not None else matched
        return RawFinding(
            severity=severity,
            category=cat,
            title=title,
            description=description,
            line_number=line_number,
            line_content=line_content,
            matched_pattern=matched,
            source=FindingSource.FAST,
            fingerprint=compute_fingerprint(cat, line_number, content),
            recommendation=recommendation or self.recommendation or None,
            confidence=confidence,
            mitre_tactic=mitre_tactic or self.mitre_tactic,
            mitre_technique=mitre_technique or self.mitre_technique,
        )
