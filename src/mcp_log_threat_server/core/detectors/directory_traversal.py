"""Path traversal and local file inclusion signatures."""

from __future__ import annotations

from ..models import Severity, ThreatCategory
from .base import PatternDetector, rule

C, H = Severity.CRITICAL, Severity.HIGH


class DirectoryTraversalDetector(PatternDetector):
    rules = (
        rule(
            r"\.\./",
            "../ path traversal",
            H,
            0.85,
            "Directory traversal attempt using ../ sequences to navigate outside the web root",
            flags=0,
        ),
        rule(
            r"\.\.\\",
            "..\\ path traversal (Windows)",
            H,
            0.85,
            "Windows-style directory traversal attempt using ..\\ sequences",
            flags=0,
        ),
        rule(
            r"(\.\./?){3,}",
            "Deep path traversal (3+ levels)",
            C,
            0.95,
            "Deep directory traversal with multiple ../ sequences, strongly suggesting an attack",
            flags=0,
        ),
        rule(
            r"%2e%2e[%2f%5c]",
            "URL-encoded traversal (%2e%2e)",
            H,
            0.9,
            "Directory traversal using URL-encoded dots and slashes to evade input filters",
        ),
        rule(
            r"\.\.%2f",
            "Partially encoded traversal (..%2f)",
            H,
            0.9,
            "Directory traversal using partially URL-encoded path separators",
        ),
        rule(
            r"%2e%2e/",
            "Partially encoded traversal (%2e%2e/)",
            H,
            0.9,
            "Directory traversal using URL-encoded dots with literal slash",
        ),
        rule(
            r"%252e%252e",
            "Double-encoded traversal",
            C,
            0.95,
            "Double URL-encoded directory traversal attempt designed to bypass WAF and input validation",
        ),
        rule(
            r"%00",
            "Null byte injection",
            H,
            0.85,
            "Null byte injection that may terminate strings early and allow path traversal in older runtimes",
            flags=0,
        ),
        rule(
            r"/etc/passwd",
            "/etc/passwd access",
            C,
            0.95,
            "Attempt to read the Unix password file, a classic indicator of directory traversal exploitation",
        ),
        rule(
            r"/etc/shadow",
            "/etc/shadow access",
            C,
            0.95,
            "Attempt to read the Unix shadow password file containing hashed passwords",
        ),
        rule(
            r"/etc/hosts",
            "/etc/hosts access",
            H,
            0.85,
            "Attempt to read the system hosts file for network reconnaissance",
        ),
        rule(
            r"/proc/self/environ",
            "/proc/self/environ access",
            C,
            0.95,
            "Attempt to read process environment variables which may contain secrets or credentials",
        ),
        rule(
            r"/proc/self/cmdline",
            "/proc/self/cmdline access",
            H,
            0.9,
            "Attempt to read the process command line arguments for information disclosure",
        ),
        rule(
            r"/proc/version",
            "/proc/version access",
            H,
            0.85,
            "Attempt to read kernel version information for targeted exploitation",
        ),
        rule(
            r"php://filter",
            "PHP filter wrapper",
            C,
            0.95,
            "PHP stream wrapper exploitation to read source code, bypassing normal file restrictions",
        ),
        rule(
            r"php://input",
            "PHP input wrapper",
            C,
            0.95,
            "PHP input wrapper that allows reading raw POST data, often used for remote code execution via LFI",
        ),
        rule(
            r"expect://",
            "PHP expect wrapper",
            C,
            0.9,
            "PHP expect:// wrapper that enables command execution through local file inclusion",
        ),
        rule(
            r"c:\\windows\\system32",
            "Windows system32 access",
            C,
            0.9,
            "Attempt to access Windows system32 directory, indicating path traversal on a Windows host",
        ),
        rule(
            r"c:\\boot\.ini",
            "Windows boot.ini access",
            C,
            0.9,
            "Attempt to read Windows boot configuration file through directory traversal",
        ),
    )
    title_prefix = "Directory Traversal Detected"
    recommendation = (
        "Validate and canonicalize all file paths before use. Use an allowlist of permitted files "
        "or directories. Never pass user input directly to file system APIs. "
        "Reject path traversal sequences during input validation."
    )
    mitre_tactic = "Collection"
    mitre_technique = "T1005 - Data from Local System"

    @property
    def name(self) -> str:
        return "directory_traversal"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.DIRECTORY_TRAVERSAL
