"""Failed-authentication counting (brute force and password spray)."""

from __future__ import annotations

import logging
import re

from ..context import DetectionContext
from ..line_utils import extract_ip, extract_username, truncate_line
from ..models import RawFinding, Severity, ThreatCategory
from .base import PatternDetector

logger = logging.getLogger(__name__)

FAILED_AUTH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"Failed password",
        r"authentication fail(ed|ure)",
        r"invalid credentials",
        r"Login failed",
        r"Access denied",
        r"unauthorized",
        r"bad password",
        r"invalid password",
        r"failed login",
        r"auth.*fail",
        r"incorrect password",
        r"account locked",
        r"too many authentication failures",
        r"password mismatch",
        r"FAILED LOGIN",
        r"\b401\b.*\b(POST|PUT)\b.*/(login|auth|signin|session)",
    )
)


def match_failed_auth(line: str) -> str | None:
    """Return the text of the first failed-auth signature, if any."""
    for rx in FAILED_AUTH_PATTERNS:
        m = rx.search(line)
        if m:
            return m.group(0)
    return None


class BruteForceDetector(PatternDetector):
    """Counts failed logins per source address.

    Emits at the threshold and every later multiple of it, and once when a
    single source has tried the spray threshold of distinct usernames.
    """

    recommendation = (
        "Implement account lockout after repeated failed attempts and rate limit authentication "
        "endpoints. Consider temporary IP bans and require multi-factor authentication."
    )
    mitre_tactic = "Credential Access"
    mitre_technique = "T1110 - Brute Force"

    @property
    def name(self) -> str:
        return "brute_force"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.BRUTE_FORCE

    def check_line(
        self, line: str, line_number: int, context: DetectionContext
    ) -> list[RawFinding]:
        matched = match_failed_auth(line)
        if matched is None:
            return []

        ip = extract_ip(line)
        if ip is None:
            return []

        limits = context.thresholds
        findings: list[RawFinding] = []

        context.failed_auth[ip] += 1
        count = context.failed_auth[ip]
        threshold = limits.brute_force_attempts
        if count >= threshold and count % threshold == 0:
            critical_at = threshold * limits.brute_force_critical_multiplier
            findings.append(
                self.make_finding(
                    severity=Severity.CRITICAL if count >= critical_at else Severity.HIGH,
                    title=f"Brute Force Attack: {count} failed auth attempts from {ip}",
                    description=(
                        f"IP address {ip} has generated {count} failed authentication attempts. "
                        "This pattern is consistent with a brute force or credential stuffing attack."
                    ),
                    line_number=line_number,
                    line_content=truncate_line(line),
                    matched=matched,
                    fingerprint_content=f"{ip}:{count}",
                    confidence=0.9,
                )
            )

        user = extract_username(line)
        if user is not None:
            users = context.attempted_users[ip]
            before = len(users)
            users.add(user.lower())
            if len(users) > before and len(users) == limits.spray_distinct_users:
                logger.debug("Password spray threshold reached for %s", ip)
                findings.append(
                    self.make_finding(
                        severity=Severity.CRITICAL,
                        title=f"Password Spray: {len(users)} distinct accounts targeted from {ip}",
                        description=(
                            f"IP address {ip} attempted to log in as {len(users)} different accounts "
                            f"({', '.join(sorted(users))}). Trying few passwords against many "
                            "accounts is characteristic of password spraying."
                        ),
                        line_number=line_number,
                        line_content=truncate_line(line),
                        matched=matched,
                        fingerprint_content=f"spray:{ip}:{len(users)}",
                        confidence=0.85,
                        recommendation=(
                            "Enforce multi-factor authentication, block the source address, and "
                            "check the targeted accounts for successful logins from the same source."
                        ),
                        mitre_technique="T1110.003 - Brute Force: Password Spraying",
                    )
                )

        return findings
