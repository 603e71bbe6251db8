"""Per-job detection state and tunable thresholds."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class DetectionThresholds:
    """Fixed detector thresholds.

    Pass a modified copy (``dataclasses.replace``) into the scan engine to
    override them; nothing else reads these values.
    """

    brute_force_attempts: int = 10
    brute_force_critical_multiplier: int = 5
    spray_distinct_users: int = 5
    directory_enum_404s: int = 20
    rate_volume_requests: int = 100
    rate_high_multiplier: int = 5
    rate_critical_multiplier: int = 10
    error_rate_min_requests: int = 10
    error_rate_ratio: float = 0.8
    burst_requests: int = 20
    burst_window_ms: int = 5000
    max_samples_per_source: int = 3
    sample_length: int = 200

    def __post_init__(self) -> None:
        for name in (
            "brute_force_attempts",
            "spray_distinct_users",
            "directory_enum_404s",
            "rate_volume_requests",
            "burst_requests",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if not 0.0 < self.error_rate_ratio <= 1.0:
            raise ValueError("error_rate_ratio must be in (0, 1]")


DEFAULT_THRESHOLDS = DetectionThresholds()


@dataclass(slots=True)
class SourceStats:
    """Request statistics for one source address."""

    total: int = 0
    errors: int = 0
    timestamps: list[int] = field(default_factory=list)
    samples: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DetectionContext:
    """Mutable accumulator shared by all detectors during one scan.

    A fresh instance is created for every scan so concurrent jobs never share
    counters.
    """

    thresholds: DetectionThresholds = DEFAULT_THRESHOLDS
    failed_auth: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    attempted_users: dict[str, set[str]] = field(default_factory=lambda: defaultdict(set))
    not_found: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    source_stats: dict[str, SourceStats] = field(default_factory=dict)
    total_lines: int = 0
    current_index: int = 0

    def stats_for(self, source: str) -> SourceStats:
        stats = self.source_stats.get(source)
        if stats is None:
            stats = self.source_stats[source] = SourceStats()
        return stats
