"""OS command injection and reverse-shell signatures."""

from __future__ import annotations

from ..models import Severity, ThreatCategory
from .base import PatternDetector, rule

C = Severity.CRITICAL

_CMDS = "cat|ls|id|whoami|uname|wget|curl|nc|bash|sh|python|perl"


class CommandInjectionDetector(PatternDetector):
    rules = (
        rule(
            r"[?&=][^&]*[;|`]\s*(ls|cat|id|whoami|uname|pwd|wget|curl|nc|bash|sh|python|perl|ruby|php)\b",
            "Shell command in URL parameter",
            C,
            0.9,
            "Command injection via URL parameter using shell metacharacters to execute system commands",
        ),
        rule(
            r"bash\s+-i\s+>&?\s*/dev/tcp",
            "Bash reverse shell",
            C,
            0.98,
            "Bash reverse shell payload attempting to establish an interactive connection back to the attacker",
        ),
        rule(
            r"/dev/tcp/\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}/\d+",
            "/dev/tcp reverse connection",
            C,
            0.95,
            "Attempt to establish a TCP connection using Bash /dev/tcp pseudo-device for reverse shell",
            flags=0,
        ),
        rule(
            r"nc\s+(-[enlvp]+\s+)*\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\s+\d+\s*(-e\s+/bin/(ba)?sh)?",
            "Netcat reverse shell",
            C,
            0.95,
            "Netcat-based reverse shell attempting to connect back to the attacker with shell access",
        ),
        rule(
            r"python[23]?\s+-c\s+['\"]import\s+socket",
            "Python reverse shell",
            C,
            0.95,
            "Python-based reverse shell using socket library to establish attacker connection",
        ),
        rule(
            r"perl\s+-e\s+['\"]use\s+Socket",
            "Perl reverse shell",
            C,
            0.95,
            "Perl-based reverse shell using Socket module for attacker connection",
        ),
        rule(
            r"wget\s+https?://",
            "wget downloading remote payload",
            C,
            0.85,
            "Command injection using wget to download a remote payload, potentially a malware dropper",
        ),
        rule(
            r"curl\s+(-[sSkLfO]+\s+)*https?://",
            "curl downloading remote payload",
            C,
            0.85,
            "Command injection using curl to download a remote payload from an external server",
        ),
        rule(
            r"curl\s+.*\|\s*(ba)?sh",
            "curl piped to shell",
            C,
            0.98,
            "Downloading and directly executing a remote script via curl piped to shell",
        ),
        rule(
            r"wget\s+.*\|\s*(ba)?sh",
            "wget piped to shell",
            C,
            0.98,
            "Downloading and directly executing a remote script via wget piped to shell",
        ),
        rule(
            r"rm\s+(-[rf]+\s+)*/",
            "rm -rf / destructive command",
            C,
            0.95,
            "Destructive command attempting to recursively delete files from the root filesystem",
        ),
        rule(
            r"mkfs\.",
            "mkfs filesystem format attempt",
            C,
            0.95,
            "Attempt to format a filesystem, which would destroy all data on the target device",
        ),
        rule(
            r"dd\s+if=.*of=/dev/",
            "dd disk overwrite",
            C,
            0.95,
            "Attempt to overwrite disk devices using dd, which would destroy data",
        ),
        rule(
            rf"`[^`]*\b({_CMDS})\b[^`]*`",
            "Backtick command substitution",
            C,
            0.9,
            "Command injection via backtick command substitution to execute embedded system commands",
        ),
        rule(
            rf"\$\(\s*({_CMDS})\b",
            "$() command substitution",
            C,
            0.9,
            "Command injection via $() command substitution to execute embedded system commands",
        ),
        rule(
            r"\|\s*(ba)?sh\s*$",
            "Pipe to shell",
            C,
            0.9,
            "Output piped directly into a shell interpreter for execution",
        ),
        rule(
            r"chmod\s+[0-7]{3,4}\s+",
            "chmod permission change",
            C,
            0.8,
            "Command injection attempting to change file permissions, potentially making files executable or world-writable",
        ),
        rule(
            r"chown\s+\w+",
            "chown ownership change",
            C,
            0.8,
            "Command injection attempting to change file ownership for privilege escalation",
        ),
        rule(
            r"crontab\s",
            "crontab manipulation",
            C,
            0.85,
            "Attempt to modify cron jobs for persistence or scheduled malicious command execution",
        ),
        rule(
            r"\bexport\s+\w+=.*[;|`]",
            "Environment variable injection",
            C,
            0.85,
            "Environment variable manipulation combined with command chaining, potentially altering program behavior",
        ),
    )
    title_prefix = "Command Injection Detected"
    recommendation = (
        "Never pass user input directly to system shell commands. Use parameterized APIs or safe "
        "library functions instead of shell execution. Apply strict input validation with allowlists. "
        "Run application processes with least-privilege accounts."
    )
    mitre_tactic = "Execution"
    mitre_technique = "T1059 - Command and Scripting Interpreter"

    @property
    def name(self) -> str:
        return "command_injection"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.COMMAND_INJECTION
