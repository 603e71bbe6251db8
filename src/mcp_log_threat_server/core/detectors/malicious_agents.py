"""Attack-tool and scripted-client user agent signatures."""

from __future__ import annotations

import re
from dataclasses import replace

from ..context import DetectionContext
from ..line_utils import truncate_line
from ..models import RawFinding, Severity, ThreatCategory
from .base import PatternDetector, rule

M, L = Severity.MEDIUM, Severity.LOW

_UA_HEADER_RE = re.compile(r"User-Agent:\s*(.+?)(?:\s*$|\s*\")", re.IGNORECASE)
_QUOTED_RE = re.compile(r"\"([^\"]*)\"")


def extract_user_agent(line: str) -> str | None:
    """Return the user agent from an explicit header or a combined-log line.

    Combined access logs put the agent in the last quoted field; at least three
    quoted fields (request, referer, agent) are required.
    """
    m = _UA_HEADER_RE.search(line)
    if m:
        return m.group(1)
    quoted = _QUOTED_RE.findall(line)
    if len(quoted) >= 3:
        return quoted[-1]
    return None


class MaliciousAgentDetector(PatternDetector):
    rules = (
        rule(r"nikto", "Nikto web scanner", M, 0.95,
             "Request from Nikto, an open-source web server vulnerability scanner"),
        rule(r"sqlmap", "sqlmap SQL injection tool", M, 0.95,
             "Request from sqlmap, an automated SQL injection exploitation tool"),
        rule(r"nmap", "Nmap network scanner", M, 0.9,
             "Request from Nmap or the Nmap scripting engine, a network discovery and auditing tool"),
        rule(r"nessus", "Nessus vulnerability scanner", M, 0.9,
             "Request from Nessus, a commercial vulnerability assessment scanner"),
        rule(r"acunetix", "Acunetix web scanner", M, 0.95,
             "Request from Acunetix, a web application security scanner"),
        rule(r"dirbuster", "DirBuster directory scanner", M, 0.95,
             "Request from DirBuster, a tool for brute-forcing directories and file names"),
        rule(r"gobuster", "Gobuster directory scanner", M, 0.95,
             "Request from Gobuster, a fast directory and DNS brute-force scanner"),
        rule(r"wfuzz", "Wfuzz web fuzzer", M, 0.9,
             "Request from Wfuzz, a web application brute-forcer and fuzzer"),
        rule(r"feroxbuster", "Feroxbuster directory scanner", M, 0.95,
             "Request from Feroxbuster, a fast recursive content discovery tool"),
        rule(r"ffuf", "ffuf web fuzzer", M, 0.9,
             "Request from ffuf, a fast web fuzzer commonly used for directory discovery"),
        rule(r"hydra", "Hydra brute-force tool", M, 0.9,
             "Request from THC Hydra, a parallelized login cracker"),
        rule(r"masscan", "Masscan port scanner", M, 0.9,
             "Request from Masscan, a high-speed port scanner"),
        rule(r"zmap", "ZMap network scanner", M, 0.85,
             "Request from ZMap, a fast single-packet network scanner"),
        rule(r"burp\s*suite", "Burp Suite proxy", L, 0.85,
             "Request from Burp Suite, a web security testing platform"),
        rule(r"zaproxy|owasp\s*zap", "OWASP ZAP proxy", L, 0.85,
             "Request from OWASP ZAP, an open-source web application security scanner"),
        rule(r"metasploit", "Metasploit framework", M, 0.95,
             "Request from the Metasploit framework, an exploitation toolkit"),
        rule(r"scrapy", "Scrapy web scraper", L, 0.7,
             "Request from Scrapy, a web scraping framework that may be used for unauthorized collection"),
        rule(r"\bcurl/", "curl command-line client", L, 0.45,
             "Request from curl; may indicate automated scripts or beaconing when seen from user endpoints"),
        rule(r"\bwget/", "wget download utility", L, 0.5,
             "Request from wget; may indicate automated file retrieval or payload downloads"),
        rule(r"python-requests", "Python Requests library", L, 0.5,
             "Request from the Python Requests library; automated scripts are common in attacks"),
        rule(r"python-urllib", "Python urllib library", L, 0.5,
             "Request from Python urllib; may indicate scanning or scraping activity"),
        rule(r"libwww-perl", "Perl LWP library", L, 0.6,
             "Request from Perl LWP, historically associated with automated attack scripts"),
        rule(r"java/\d", "Raw Java HTTP client", L, 0.5,
             "Request from a raw Java HTTP client, which may indicate automated scanning"),
    )
    title_prefix = "Malicious User Agent"
    recommendation = (
        "Block known attack tool User-Agent strings at the WAF or reverse proxy. "
        "User-Agent headers are easily spoofed, so treat this as one layer of defense."
    )
    mitre_tactic = "Reconnaissance"
    mitre_technique = "T1595 - Active Scanning"

    @property
    def name(self) -> str:
        return "malicious_agent"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.MALICIOUS_USER_AGENT

    def check_line(
        self, line: str, line_number: int, context: DetectionContext
    ) -> list[RawFinding]:
        findings: list[RawFinding] = []
        agent = extract_user_agent(line)

        if agent is not None and not agent.strip():
            findings.append(
                self.make_finding(
                    severity=Severity.LOW,
                    title="Empty User Agent Detected",
                    description=(
                        "Request with an empty User-Agent header. Browsers always send one; "
                        "empty values usually indicate automated tools or crafted requests."
                    ),
                    line_number=line_number,
                    line_content=truncate_line(line),
                    matched='""',
                    fingerprint_content="empty-ua",
                    confidence=0.7,
                    recommendation=(
                        "Monitor and rate-limit requests with empty User-Agent headers unless "
                        "expected from internal services."
                    ),
                )
            )

        # Fall back to the whole line when no agent field could be isolated.
        target = agent if agent is not None else line
        for finding in super().check_line(target, line_number, context):
            findings.append(_with_line(finding, line))
        return findings


def _with_line(finding: RawFinding, line: str) -> RawFinding:
    return replace(finding, line_content=truncate_line(line))
