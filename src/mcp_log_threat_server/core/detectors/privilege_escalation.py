"""Privilege escalation signatures (sudo, setuid, group changes, ...)."""

from __future__ import annotations

from ..models import Severity, ThreatCategory
from .base import PatternDetector, rule

C, H = Severity.CRITICAL, Severity.HIGH
_CASE = 0  # case-sensitive


class PrivilegeEscalationDetector(PatternDetector):
    rules = (
        rule(
            r"sudo\s+(-[isSHEu]\s+)*\b(su|bash|sh|passwd|visudo|useradd|usermod|groupadd)\b",
            "sudo privilege command",
            H,
            0.85,
            "Privileged command executed via sudo, potentially escalating user permissions to root",
        ),
        rule(
            r"sudo\s+-i\b",
            "sudo interactive root shell",
            C,
            0.9,
            "Interactive root shell obtained via sudo -i, granting full system control",
            flags=_CASE,
        ),
        rule(
            r"sudo\s+su\s*(-\s*)?$",
            "sudo su root escalation",
            C,
            0.9,
            "Escalation to root user via sudo su, gaining unrestricted access",
            flags=_CASE,
        ),
        rule(
            r"chmod\s+[u+]*s\s",
            "chmod setuid/setgid",
            C,
            0.92,
            "Setting the setuid or setgid bit on a file, allowing it to execute with the owner's privileges",
        ),
        rule(
            r"chmod\s+[42][0-7]{3}\s",
            "chmod numeric setuid/setgid",
            C,
            0.92,
            "Setting setuid (4xxx) or setgid (2xxx) via numeric permissions",
            flags=_CASE,
        ),
        rule(
            r"chown\s+(root|0)[:.]?\s",
            "chown to root",
            H,
            0.8,
            "Changing file ownership to root, potentially enabling privileged execution",
        ),
        rule(
            r"/etc/sudoers",
            "sudoers file access",
            C,
            0.95,
            "Access or modification of /etc/sudoers, which controls sudo privileges for all users",
            flags=_CASE,
        ),
        rule(
            r"visudo",
            "visudo invocation",
            H,
            0.85,
            "visudo invoked to edit sudoers configuration, potentially granting new privileges",
            flags=_CASE,
        ),
        rule(
            r"usermod\s+.*-[aG]+\s",
            "usermod group membership change",
            H,
            0.85,
            "User added to a group via usermod, potentially granting elevated access",
        ),
        rule(
            r"gpasswd\s+-a\s+\w+\s+(sudo|wheel|admin|docker|root)",
            "gpasswd privileged group add",
            C,
            0.9,
            "User added to a privileged group (sudo/wheel/admin/docker) via gpasswd",
        ),
        rule(
            r"\bpkexec\b",
            "pkexec invocation",
            H,
            0.8,
            "pkexec used to execute a command with elevated privileges via PolicyKit",
            flags=_CASE,
        ),
        rule(
            r"\bdoas\b",
            "doas invocation",
            H,
            0.8,
            "doas used to execute commands as another user, similar to sudo",
            flags=_CASE,
        ),
        rule(
            r"/etc/(shadow|passwd|gshadow|master\.passwd)",
            "sensitive auth file access",
            H,
            0.85,
            "Access to authentication files (shadow/passwd) which contain user credential data",
            flags=_CASE,
        ),
        rule(
            r"net\s+localgroup\s+administrators\s+",
            "Windows admin group modification",
            C,
            0.92,
            "Modification of the local Administrators group on Windows, granting full system access",
        ),
        rule(
            r"runas\s+/user:",
            "Windows runas privilege switch",
            H,
            0.8,
            "runas used to execute a command as another user on Windows",
        ),
        rule(
            r"setcap\s",
            "Linux capability assignment",
            H,
            0.85,
            "File capabilities being set via setcap, which can grant root-equivalent powers",
        ),
        rule(
            r"/etc/pam\.d/",
            "PAM configuration access",
            H,
            0.8,
            "Access to PAM configuration files, which control authentication policies",
            flags=_CASE,
        ),
    )
    title_prefix = "Privilege Escalation"
    recommendation = (
        "Review and restrict sudo/su access. Enforce the principle of least privilege. "
        "Audit sudoers and group membership modifications regularly."
    )
    mitre_tactic = "Privilege Escalation"
    mitre_technique = "T1548 - Abuse Elevation Control Mechanism"

    @property
    def name(self) -> str:
        return "privilege_escalation"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.PRIVILEGE_ESCALATION
