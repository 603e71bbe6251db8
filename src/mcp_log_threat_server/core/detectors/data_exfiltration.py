"""Data exfiltration indicators."""

from __future__ import annotations

from ..models import Severity, ThreatCategory
from .base import PatternDetector, rule

C, H, M = Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM
_IP = r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}"


class DataExfiltrationDetector(PatternDetector):
    rules = (
        rule(
            r"\brclone\s+(sync|copy|move)\b",
            "rclone data transfer",
            C,
            0.9,
            "rclone used to sync/copy data to a remote storage provider",
        ),
        rule(
            r"\bmegacmd\b|\bmega-put\b|\bmega-sync\b",
            "MEGA cloud exfil tool",
            C,
            0.9,
            "MEGA cloud storage CLI detected, frequently used for data exfiltration",
        ),
        rule(
            r"s3\.amazonaws\.com.*PUT",
            "S3 upload detected",
            H,
            0.7,
            "Data uploaded to AWS S3, possibly to an attacker-controlled bucket",
        ),
        rule(
            r"blob\.core\.windows\.net.*PUT",
            "Azure Blob upload detected",
            H,
            0.7,
            "Data uploaded to Azure Blob Storage, possibly to an external account",
        ),
        rule(
            r"storage\.googleapis\.com.*PUT",
            "GCS upload detected",
            H,
            0.7,
            "Data uploaded to Google Cloud Storage, possibly to an external project",
        ),
        rule(
            r"bytes_(?:out|sent)[=:\s]+(\d{8,})",
            "Large outbound data transfer",
            H,
            0.75,
            "Unusually large outbound transfer (>10MB), which may indicate bulk exfiltration",
        ),
        rule(
            r"content[_-]length[=:\s]+(\d{8,})",
            "Large response content-length",
            M,
            0.65,
            "Large content-length may indicate bulk data served to an unauthorized client",
        ),
        rule(
            r"\b[a-z0-9]{50,}\.[a-z0-9-]+\.[a-z]{2,}\b",
            "DNS tunneling indicator",
            H,
            0.8,
            "Unusually long DNS subdomain label, a common indicator of DNS tunneling",
        ),
        rule(
            r"[?&=][A-Za-z0-9+/]{40,}={0,2}(&|$|\s)",
            "Base64 payload in URL",
            H,
            0.75,
            "Large Base64-encoded payload in a URL parameter, potentially encoding exfiltrated data",
            flags=0,
        ),
        rule(
            r"\b(tar|zip|7z|rar)\b.*/(etc|var/log|home|root|\.ssh|\.aws|\.gnupg)",
            "Archive of sensitive directories",
            C,
            0.88,
            "Archive creation targeting sensitive directories, a precursor to data exfiltration",
        ),
        rule(
            r"\b(tar|zip|7z)\b.*\.(sql|dump|bak|backup|csv|xlsx?)\b",
            "Archive of database/backup files",
            H,
            0.8,
            "Archive creation involving database dumps or backups, commonly staged before exfiltration",
        ),
        rule(
            rf"\bftp\s+{_IP}\b",
            "FTP to external IP",
            H,
            0.8,
            "FTP connection to an IP address, commonly used for exfiltration over unencrypted channels",
            flags=0,
        ),
        rule(
            rf"\bscp\s+.*{_IP}:",
            "SCP file transfer to external IP",
            H,
            0.8,
            "SCP file transfer to an external IP, potentially exfiltrating files over SSH",
            flags=0,
        ),
        rule(
            rf"\bsftp\s+\w*@?{_IP}\b",
            "SFTP connection to external IP",
            H,
            0.8,
            "SFTP connection to an external IP address",
            flags=0,
        ),
        rule(
            r"curl\s+.*-[dFT]\s+@?/",
            "curl uploading local file",
            H,
            0.8,
            "curl used to POST or upload a local file to a remote server",
        ),
        rule(
            r"\b(sendmail|mail|mutt|mailx)\b.*-[as]\s",
            "Email-based exfiltration",
            H,
            0.75,
            "Command-line mail utility used with an attachment flag",
        ),
    )
    title_prefix = "Data Exfiltration"
    recommendation = (
        "Implement Data Loss Prevention (DLP) controls. Alert on large outbound transfers. "
        "Restrict access to cloud storage and file transfer tools."
    )
    mitre_tactic = "Exfiltration"
    mitre_technique = "T1048 - Exfiltration Over Alternative Protocol"

    @property
    def name(self) -> str:
        return "data_exfiltration"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.DATA_EXFILTRATION
