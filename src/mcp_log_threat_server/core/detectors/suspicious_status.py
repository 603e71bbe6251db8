"""HTTP status code lookup and 404-based directory enumeration."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..context import DetectionContext
from ..line_utils import extract_ip, truncate_line
from ..models import RawFinding, Severity, ThreatCategory
from .base import PatternDetector

STATUS_CODE_RE = re.compile(
    r"(?:HTTP/[\d.]+[\"']\s+|(?:status[=:\s]+)|(?:returned\s+)|(?:HTTP\s+))(\d{3})\b",
    re.IGNORECASE,
)
ERROR_STATUS_RE = re.compile(
    r"(?:HTTP/[\d.]+[\"']\s+|(?:status[=:\s]+)|(?:returned\s+)|(?:HTTP\s+))([45]\d{2})\b",
    re.IGNORECASE,
)

_RECON = ("Reconnaissance", "T1595 - Active Scanning")
_DOS = ("Impact", "T1499 - Endpoint Denial of Service")


@dataclass(frozen=True, slots=True)
class StatusInfo:
    severity: Severity
    label: str
    description: str
    mitre: tuple[str, str]


STATUS_TABLE: dict[str, StatusInfo] = {
    "400": StatusInfo(
        Severity.LOW,
        "400 Bad Request",
        "Bad request response may indicate malformed attack payloads or fuzzing activity",
        _RECON,
    ),
    "401": StatusInfo(
        Severity.LOW,
        "401 Unauthorized",
        "Unauthorized response indicating failed authentication attempt",
        ("Credential Access", "T1110 - Brute Force"),
    ),
    "403": StatusInfo(
        Severity.LOW,
        "403 Forbidden",
        "Forbidden response may indicate access control bypass attempt or directory enumeration",
        _RECON,
    ),
    "404": StatusInfo(
        Severity.LOW,
        "404 Not Found",
        "Not found response may indicate directory enumeration or resource discovery scanning",
        _RECON,
    ),
    "405": StatusInfo(
        Severity.LOW,
        "405 Method Not Allowed",
        "Method not allowed response may indicate HTTP verb tampering attempts",
        _RECON,
    ),
    "500": StatusInfo(
        Severity.MEDIUM,
        "500 Internal Server Error",
        "Internal server error that may be triggered by malicious input causing application exceptions",
        _DOS,
    ),
    "502": StatusInfo(
        Severity.MEDIUM,
        "502 Bad Gateway",
        "Bad gateway error that may indicate backend service disruption or SSRF exploitation",
        _DOS,
    ),
    "503": StatusInfo(
        Severity.MEDIUM,
        "503 Service Unavailable",
        "Service unavailable response that may indicate denial of service impact or resource exhaustion",
        _DOS,
    ),
}


class SuspiciousStatusDetector(PatternDetector):
    recommendation = (
        "Investigate the source IP and requested resource. Ensure error pages do not leak stack "
        "traces, internal paths, or version numbers."
    )

    @property
    def name(self) -> str:
        return "suspicious_status"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.SUSPICIOUS_STATUS_CODE

    def check_line(
        self, line: str, line_number: int, context: DetectionContext
    ) -> list[RawFinding]:
        m = STATUS_CODE_RE.search(line)
        if not m:
            return []
        code = m.group(1)
        info = STATUS_TABLE.get(code)
        if info is None:
            return []

        line_content = truncate_line(line)
        findings: list[RawFinding] = []

        if code == "404":
            enum = self._track_not_found(line, line_number, line_content, context)
            if enum is not None:
                findings.append(enum)

        tactic, technique = info.mitre
        findings.append(
            self.make_finding(
                severity=info.severity,
                title=f"Suspicious Status Code: {info.label}",
                description=info.description,
                line_number=line_number,
                line_content=line_content,
                matched=m.group(0),
                confidence=0.6,
                mitre_tactic=tactic,
                mitre_technique=technique,
            )
        )
        return findings

    def _track_not_found(
        self,
        line: str,
        line_number: int,
        line_content: str,
        context: DetectionContext,
    ) -> RawFinding | None:
        ip = extract_ip(line)
        if ip is None:
            return None

        context.not_found[ip] += 1
        count = context.not_found[ip]
        threshold = context.thresholds.directory_enum_404s
        if count < threshold or count % threshold != 0:
            return None

        return self.make_finding(
            category=ThreatCategory.RECONNAISSANCE,
            severity=Severity.HIGH,
            title=f"Directory Enumeration: {count} 404 responses for IP {ip}",
            description=(
                f"IP address {ip} has triggered {count} 404 Not Found responses, a strong "
                "indicator of automated directory and file enumeration."
            ),
            line_number=line_number,
            line_content=line_content,
            matched=f"404 x{count} from {ip}",
            fingerprint_content=f"404-enum:{ip}:{count}",
            confidence=0.85,
            recommendation=(
                "Rate limit per IP address and deploy bot detection. Consider blocking addresses "
                "that generate excessive 404 errors."
            ),
            mitre_tactic="Reconnaissance",
            mitre_technique="T1595.003 - Active Scanning: Wordlist Scanning",
        )
