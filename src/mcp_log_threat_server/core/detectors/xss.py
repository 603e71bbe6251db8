"""Cross-site scripting signatures."""

from __future__ import annotations

from ..models import Severity, ThreatCategory
from .base import PatternDetector, rule

H, M = Severity.HIGH, Severity.MEDIUM

_EVENTS = "load|error|click|mouseover|mouseout|focus|blur|submit|change|input|keydown|keyup|keypress"


class XssDetector(PatternDetector):
    rules = (
        rule(
            r"<\s*script[^>]*>",
            "<script> tag injection",
            H,
            0.95,
            "Cross-site scripting attempt using inline script tag to execute arbitrary JavaScript",
        ),
        rule(
            r"<\s*/\s*script\s*>",
            "</script> closing tag",
            H,
            0.9,
            "Closing script tag detected, indicating possible script injection payload",
        ),
        rule(
            r"%3C\s*script",
            "URL-encoded <script>",
            H,
            0.9,
            "Cross-site scripting attempt using URL-encoded script tags to bypass input filters",
        ),
        rule(
            r"&lt;\s*script",
            "HTML-encoded <script>",
            M,
            0.8,
            "HTML-encoded script tag detected; may indicate XSS attempt or double-encoding bypass",
        ),
        rule(
            r"javascript\s*:",
            "javascript: URI",
            H,
            0.9,
            "Cross-site scripting attempt using javascript: URI scheme to execute code via links or attributes",
        ),
        rule(
            rf"\bon({_EVENTS})\s*=",
            "Event handler injection",
            H,
            0.85,
            "Cross-site scripting attempt injecting HTML event handler attributes to execute JavaScript",
        ),
        rule(
            r"data\s*:\s*text/html",
            "data: text/html URI",
            H,
            0.85,
            "Cross-site scripting attempt using data: URI with HTML content type to execute scripts",
        ),
        rule(
            r"eval\s*\(",
            "eval() call",
            M,
            0.75,
            "Potential XSS payload using eval() to dynamically execute JavaScript code",
        ),
        rule(
            r"document\s*\.\s*cookie",
            "document.cookie access",
            H,
            0.9,
            "Attempt to access session cookies via document.cookie, commonly used for session hijacking",
        ),
        rule(
            r"document\s*\.\s*write\s*\(",
            "document.write() call",
            M,
            0.8,
            "Potential XSS using document.write() to inject content into the page DOM",
        ),
        rule(
            r"\.innerHTML\s*=",
            "innerHTML assignment",
            M,
            0.7,
            "Potential DOM-based XSS through innerHTML assignment that could render untrusted HTML",
        ),
        rule(
            r"<\s*svg[^>]*\s+on\w+\s*=",
            "SVG-based XSS",
            H,
            0.9,
            "Cross-site scripting attempt using SVG elements with event handlers",
        ),
        rule(
            r"<\s*img[^>]*\s+onerror\s*=",
            "IMG onerror XSS",
            H,
            0.95,
            "Cross-site scripting using img tag with onerror event handler to execute JavaScript",
        ),
        rule(
            r"<\s*iframe[^>]*>",
            "iframe injection",
            M,
            0.8,
            "Potential XSS or phishing attack via injected iframe element",
        ),
        rule(
            r"String\s*\.\s*fromCharCode",
            "String.fromCharCode obfuscation",
            M,
            0.8,
            "JavaScript obfuscation technique commonly used to hide XSS payloads",
        ),
        rule(
            r"window\s*\.\s*location\s*[=.]",
            "window.location manipulation",
            M,
            0.75,
            "Potential XSS or open redirect attempt by manipulating window.location",
        ),
        rule(
            r"atob\s*\(",
            "atob() Base64 decoding",
            M,
            0.7,
            "Base64 decoding function commonly used to obfuscate XSS payloads",
        ),
        rule(
            r"expression\s*\(",
            "CSS expression() XSS",
            M,
            0.7,
            "CSS expression() function that can execute JavaScript, primarily affects older browsers",
        ),
    )
    title_prefix = "XSS Detected"
    recommendation = (
        "Implement context-aware output encoding for all user-supplied data. "
        "Use Content Security Policy (CSP) headers to restrict inline script execution. "
        "Sanitize HTML input with a vetted sanitizer. Validate input on both client and server side."
    )
    mitre_tactic = "Initial Access"
    mitre_technique = "T1189 - Drive-by Compromise"

    @property
    def name(self) -> str:
        return "xss"

    @property
    def category(self) -> ThreatCategory:
        return ThreatCategory.XSS
