"""Per-source volume, error-rate and burst analysis (post-pass)."""

from __future__ import annotations

from ..context import DetectionContext, DetectionThresholds, SourceStats
from ..line_utils import compute_fingerprint
from ..models import FindingSource, RawFinding, Severity, ThreatCategory
from .base import PostPassDetector

_CAT = ThreatCategory.RATE_ANOMALY


def _finding(
    *,
    severity: Severity,
    title: str,
    description: str,
    stats: SourceStats,
    matched: str,
    fingerprint_content: str,
    recommendation: str,
    confidence: float,
    tactic: str,
    technique: str,
    earliest: int | None,
) -> RawFinding:
    return RawFinding(
        severity=severity,
        category=_CAT,
        title=title,
        description=description,
        line_number=None,
        line_content=stats.samples[0] if stats.samples else None,
        matched_pattern=matched,
        source=FindingSource.FAST,
        fingerprint=compute_fingerprint(_CAT, None, fingerprint_content),
        recommendation=recommendation,
        confidence=confidence,
        mitre_tactic=tactic,
        mitre_technique=technique,
        event_timestamp=earliest,
    )


def find_burst(timestamps: list[int], *, size: int, window_ms: int) -> int | None:
    """Return the size of the first burst in sorted timestamps, or None.

    A burst is `size` consecutive timestamps spanning at most `window_ms`; the
    count extends to every later timestamp still inside the window.
    """
    for i in range(len(timestamps) - size + 1):
        start = timestamps[i]
        if timestamps[i + size - 1] - start > window_ms:
            continue
        count = size
        j = i + size
        while j < len(timestamps) and timestamps[j] - start <= window_ms:
            count += 1
            j += 1
        return count
    return None


class RateAnomalyDetector(PostPassDetector):
    @property
    def name(self) -> str:
        return "rate_anomaly"

    def analyze(self, context: DetectionContext) -> list[RawFinding]:
        findings: list[RawFinding] = []
        for ip, stats in context.source_stats.items():
            findings.extend(self._analyze_source(ip, stats, context.thresholds))
        return findings

    def _analyze_source(
        self, ip: str, stats: SourceStats, limits: DetectionThresholds
    ) -> list[RawFinding]:
        out: list[RawFinding] = []
        ts = sorted(stats.timestamps)
        earliest = ts[0] if ts else None

        volume = limits.rate_volume_requests
        if stats.total >= volume:
            if stats.total >= volume * limits.rate_critical_multiplier:
                severity = Severity.CRITICAL
            elif stats.total >= volume * limits.rate_high_multiplier:
                severity = Severity.HIGH
            else:
                severity = Severity.MEDIUM

            rate_info = ""
            if len(ts) >= 2:
                duration_s = (ts[-1] - ts[0]) / 1000
                if duration_s > 0:
                    rps = stats.total / duration_s
                    rate_info = (
                        f" Average rate: {rps:.1f} requests/second over {round(duration_s)}s."
                    )

            out.append(
                _finding(
                    severity=severity,
                    title=f"High Request Volume: {stats.total} requests from {ip}",
                    description=(
                        f"IP address {ip} generated {stats.total} requests, exceeding the "
                        f"threshold of {volume}.{rate_info} This may indicate automated "
                        "scanning, denial of service, or bot activity."
                    ),
                    stats=stats,
                    matched=f"{stats.total} requests from {ip}",
                    fingerprint_content=f"volume:{ip}:{stats.total}",
                    recommendation=(
                        "Rate limit per IP address at the reverse proxy or WAF. Check whether the "
                        "address belongs to a legitimate crawler or monitor before blocking."
                    ),
                    confidence=0.85,
                    tactic="Impact",
                    technique="T1498 - Network Denial of Service",
                    earliest=earliest,
                )
            )

        if (
            stats.total >= limits.error_rate_min_requests
            and stats.errors / stats.total >= limits.error_rate_ratio
        ):
            rate = f"{stats.errors / stats.total * 100:.1f}"
            out.append(
                _finding(
                    severity=Severity.HIGH,
                    title=f"High Error Rate: {rate}% errors from {ip}",
                    description=(
                        f"IP address {ip} has a {rate}% error response rate ({stats.errors} errors "
                        f"out of {stats.total} requests), typical of scanning, fuzzing, or "
                        "brute-force activity."
                    ),
                    stats=stats,
                    matched=f"{rate}% error rate from {ip}",
                    fingerprint_content=f"errorrate:{ip}:{rate}",
                    recommendation=(
                        "Investigate which errors are generated and consider temporarily blocking "
                        "the address."
                    ),
                    confidence=0.8,
                    tactic="Reconnaissance",
                    technique="T1595 - Active Scanning",
                    earliest=earliest,
                )
            )

        burst = None
        if len(ts) >= limits.burst_requests:
            burst = find_burst(ts, size=limits.burst_requests, window_ms=limits.burst_window_ms)
        if burst is not None:
            window_s = f"{limits.burst_window_ms / 1000:g}s"
            out.append(
                _finding(
                    severity=Severity.HIGH,
                    title=f"Request Burst: {burst} requests in {window_s} from {ip}",
                    description=(
                        f"IP address {ip} sent {burst} requests within a {window_s} window, "
                        "consistent with scripted attacks or denial-of-service attempts."
                    ),
                    stats=stats,
                    matched=f"{burst} requests in {window_s} burst from {ip}",
                    fingerprint_content=f"burst:{ip}:{burst}",
                    recommendation="Apply short-window rate limiting or request throttling.",
                    confidence=0.85,
                    tactic="Impact",
                    technique="T1498 - Network Denial of Service",
                    earliest=earliest,
                )
            )

        return out
