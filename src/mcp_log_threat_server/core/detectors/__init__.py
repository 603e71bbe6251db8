"""Detection rule set.

`default_detectors()` returns the per-line detectors in the order the scan
engine runs them; `default_post_pass()` returns the detectors run once after
the last line.
"""

from __future__ import annotations

from .base import LineDetector, PatternDetector, PatternRule, PostPassDetector, rule
from .brute_force import BruteForceDetector
from .command_injection import CommandInjectionDetector
from .data_exfiltration import DataExfiltrationDetector
from .directory_traversal import DirectoryTraversalDetector
from .malicious_agents import MaliciousAgentDetector
from .privilege_escalation import PrivilegeEscalationDetector
from .rate_anomaly import RateAnomalyDetector
from .sql_injection import SqlInjectionDetector
from .suspicious_status import ERROR_STATUS_RE, SuspiciousStatusDetector
from .xss import XssDetector

__all__ = [
    "ERROR_STATUS_RE",
    "BruteForceDetector",
    "CommandInjectionDetector",
    "DataExfiltrationDetector",
    "DirectoryTraversalDetector",
    "LineDetector",
    "MaliciousAgentDetector",
    "PatternDetector",
    "PatternRule",
    "PostPassDetector",
    "PrivilegeEscalationDetector",
    "RateAnomalyDetector",
    "SqlInjectionDetector",
    "SuspiciousStatusDetector",
    "XssDetector",
    "default_detectors",
    "default_post_pass",
    "rule",
]


def default_detectors() -> list[LineDetector]:
    """Per-line detectors in execution order."""
    return [
        SqlInjectionDetector(),
        XssDetector(),
        BruteForceDetector(),
        DirectoryTraversalDetector(),
        CommandInjectionDetector(),
        SuspiciousStatusDetector(),
        MaliciousAgentDetector(),
        PrivilegeEscalationDetector(),
        DataExfiltrationDetector(),
    ]


def default_post_pass() -> list[PostPassDetector]:
    return [RateAnomalyDetector()]
