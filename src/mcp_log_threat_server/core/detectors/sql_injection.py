"""SQL injection signatures."""

from __future__ import annotations

from ..models import Severity, ThreatCategory
from .base import PatternDetector, rule

C, H = Severity.CRITICAL, Severity.HIGH


class SqlInjectionDetector(PatternDetector):
    """Detects SQL injection payloads in request lines."""

    rules = (
        rule(
            r"UNION\s+(ALL\s+)?SELECT",
            "UNION SELECT",
            C,
            0.95,
            "UNION-based SQL injection attempting to extract data from other tables",
        ),
        rule(
            r"['\"]?\s*OR\s+['\"]?1['\"]?\s*=\s*['\"]?1",
            "OR 1=1 tautology",
            H,
            0.9,
            "Tautology-based SQL injection attempting to bypass authentication or extract all records",
        ),
        rule(
            r"['\"]?\s*OR\s+['\"]?1['\"]?\s*=\s*['\"]?1\s*--",
            "OR 1=1 with comment",
            C,
            0.95,
            "Tautology-based SQL injection with comment terminator to bypass query logic",
        ),
        rule(
            r"DROP\s+TABLE",
            "DROP TABLE",
            C,
            0.95,
            "SQL injection attempting to destroy database tables",
        ),
        rule(
            r"DELETE\s+FROM\s+\w+\s*(?:;|--|$)",
            "DELETE FROM",
            C,
            0.85,
            "SQL injection attempting to delete records from a database table",
        ),
        rule(
            r"INSERT\s+INTO\s+\w+",
            "INSERT INTO",
            H,
            0.8,
            "SQL injection attempting to insert malicious data into database tables",
        ),
        rule(
            r"WAITFOR\s+DELAY",
            "WAITFOR DELAY (time-based blind SQLi)",
            C,
            0.95,
            "Time-based blind SQL injection using MSSQL WAITFOR DELAY to infer data",
        ),
        rule(
            r"BENCHMARK\s*\(",
            "BENCHMARK() (time-based blind SQLi)",
            C,
            0.95,
            "Time-based blind SQL injection using MySQL BENCHMARK function to infer data",
        ),
        rule(
            r"SLEEP\s*\(\s*\d+\s*\)",
            "SLEEP() (time-based blind SQLi)",
            C,
            0.95,
            "Time-based blind SQL injection using SLEEP function to infer data",
        ),
        rule(
            r"%27\s*(OR|AND)\s*%27",
            "URL-encoded quote injection",
            H,
            0.85,
            "SQL injection using URL-encoded single quotes to evade input filters",
        ),
        rule(
            r"%55NION\s+%53ELECT",
            "URL-encoded UNION SELECT",
            C,
            0.9,
            "SQL injection using partial URL encoding to bypass WAF rules",
        ),
        rule(
            r"UNION%20SELECT",
            "URL-encoded UNION SELECT (space)",
            C,
            0.9,
            "UNION-based SQL injection with URL-encoded spaces",
        ),
        rule(
            r"UNION%0ASELECT",
            "URL-encoded UNION SELECT (newline)",
            C,
            0.9,
            "UNION-based SQL injection with URL-encoded newline to bypass WAF",
        ),
        rule(
            r";\s*(SELECT|INSERT|UPDATE|DELETE|DROP|ALTER|CREATE)\s",
            "Stacked SQL query",
            H,
            0.8,
            "Potential stacked SQL query injection attempting to execute multiple statements",
        ),
        rule(
            r"/\*.*\*/\s*(UNION|SELECT|DROP|INSERT|DELETE)",
            "Comment-based SQL injection evasion",
            H,
            0.85,
            "SQL injection using inline comments to evade pattern-matching defenses",
        ),
        rule(
            r"CHAR\s*\(\s*\d+",
            "CHAR() function obfuscation",
            H,
            0.75,
            "SQL injection using CHAR() function to build strings and evade detection",
        ),
        rule(
            r"CONCAT\s*\(.*SELECT",
            "CONCAT with SELECT subquery",
            H,
            0.85,
            "SQL injection using CONCAT to extract and combine data from queries",
        ),
        rule(
            r"INFORMATION_SCHEMA\.(TABLES|COLUMNS|SCHEMATA)",
            "INFORMATION_SCHEMA enumeration",
            C,
            0.95,
            "SQL injection enumerating database metadata to map table and column structures",
        ),
        rule(
            r"0x[0-9a-f]{8,}",
            "Hex-encoded SQL payload",
            H,
            0.7,
            "Potential SQL injection using hexadecimal encoding to obfuscate payloads",
        ),
    )
    title_prefix = "SQL Injection Detected"
    recommendation = (
        "Use parameterized queries or prepared statements. Validate and sanitize all user input. "
        "Deploy a Web Application Firewall (WAF) to block known injection patterns. "
        "Review application code for concatenated SQL queries."
    )
    mitre_tactic = "Initial Access"
    mitre_technique = "T1190 - Exploit Public-Facing Application"

    @property
    def name(self) -> str:
        return "sql_injection"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.SQL_INJECTION
