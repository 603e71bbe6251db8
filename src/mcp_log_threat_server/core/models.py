"""Core data models for log threat analysis."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Severity(str, Enum):
    """Finding severity, ordered from most to least urgent."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Sort rank (0 is most severe)."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}


class ThreatCategory(str, Enum):
    """Closed set of threat categories a finding can belong to."""

    SQL_INJECTION = "SQL_INJECTION"
    XSS = "XSS"
    BRUTE_FORCE = "BRUTE_FORCE"
    DIRECTORY_TRAVERSAL = "DIRECTORY_TRAVERSAL"
    COMMAND_INJECTION = "COMMAND_INJECTION"
    SUSPICIOUS_STATUS_CODE = "SUSPICIOUS_STATUS_CODE"
    MALICIOUS_USER_AGENT = "MALICIOUS_USER_AGENT"
    RATE_ANOMALY = "RATE_ANOMALY"
    PRIVILEGE_ESCALATION = "PRIVILEGE_ESCALATION"
    DATA_EXFILTRATION = "DATA_EXFILTRATION"
    RECONNAISSANCE = "RECONNAISSANCE"
    OTHER = "OTHER"


class FindingSource(str, Enum):
    """Which pass produced a finding."""

    FAST = "FAST"  # deterministic pattern scan
    SLOW = "SLOW"  # external contextual analyzer


class LogFormat(str, Enum):
    JSONL = "jsonl"
    CSV = "csv"
    PLAIN = "plain"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class AnalysisStatus(str, Enum):
    """Sub-status of the analysis record attached to a job."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class RawFinding:
    """One detected security-relevant event.

    `fingerprint` is the identity used for dedup and for store deletes; it is
    derived from (category, line_number, content) by `compute_fingerprint`.
    """

    severity: Severity
    category: ThreatCategory
    title: str
    description: str
    line_number: int | None
    line_content: str | None
    matched_pattern: str | None
    source: FindingSource
    fingerprint: str
    recommendation: str | None = None
    confidence: float | None = None
    mitre_tactic: str | None = None
    mitre_technique: str | None = None
    event_timestamp: int | None = None  # epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dict."""
        d = asdict(self)
        d["severity"] = self.severity.value
        d["category"] = self.category.value
        d["source"] = self.source.value
        return d


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Output of one streaming scan pass."""

    findings: list[RawFinding]
    total_lines: int
    skipped_lines: int
    parse_errors: int
    detected_format: LogFormat


@dataclass(frozen=True, slots=True)
class AnalysisJob:
    """Persisted job state. Only the orchestrator changes it (through the store)."""

    id: str
    source_path: str
    status: JobStatus = JobStatus.PENDING
    analysis_status: AnalysisStatus | None = None
    severity_counts: dict[str, int] = field(default_factory=dict)
    total_findings: int = 0
    fast_pass_completed: bool = False
    slow_pass_completed: bool = False
    slow_pass_available: bool = False
    overall_summary: str | None = None
    error_message: str | None = None
    total_lines: int = 0
    skipped_lines: int = 0
    detected_format: LogFormat | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot of the job."""
        return {
            "id": self.id,
            "source_path": self.source_path,
            "status": self.status.value,
            "analysis_status": self.analysis_status.value if self.analysis_status else None,
            "severity_counts": dict(self.severity_counts),
            "total_findings": self.total_findings,
            "fast_pass_completed": self.fast_pass_completed,
            "slow_pass_completed": self.slow_pass_completed,
            "slow_pass_available": self.slow_pass_available,
            "overall_summary": self.overall_summary,
            "error_message": self.error_message,
            "total_lines": self.total_lines,
            "skipped_lines": self.skipped_lines,
            "detected_format": self.detected_format.value if self.detected_format else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
