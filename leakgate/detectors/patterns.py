"""
LeakGate Pattern Detector

Detects well-known credential formats with regular expressions.
Each rule captures the secret itself in the ``secret`` group so the
finding's fingerprint and offsets cover only the credential.
"""

from __future__ import annotations

import re
from typing import List, Optional

from leakgate.core.detector import BaseDetector, ScanFile, ScanRequest
from leakgate.core.finding import Finding, Severity, fingerprint, redact

# Lines containing this marker are never reported
ALLOW_MARKER = "leakgate: allow"

_ASSIGN = r"\s*[=:]\s*['\"]?"


class PatternDetector(BaseDetector):
    """
    Regular-expression secrets detector covering cloud credentials,
    VCS and SaaS tokens, private keys, and connection strings.
    """

    name = "patterns"

    # (rule_id, title, pattern, severity)
    RULES: list[tuple[str, str, str, Severity]] = [
        # ── Cloud Providers ──
        ("aws-access-key-id", "AWS Access Key ID",
         r"(?<![A-Za-z0-9/+=])(?P<secret>(?:AKIA|ASIA|ABIA|ACCA|A3T[A-Z0-9])[A-Z0-9]{16})(?![A-Za-z0-9/+=])",
         Severity.CRITICAL),

        ("aws-secret-access-key", "AWS Secret Access Key",
         r"(?i)(?:aws_secret_access_key|aws_secret_key)" + _ASSIGN + r"(?P<secret>[A-Za-z0-9/+=]{40})",
         Severity.CRITICAL),

        ("gcp-api-key", "GCP API Key",
         r"(?P<secret>AIza[0-9A-Za-z_-]{35})",
         Severity.HIGH),

        # ── Version Control ──
        ("github-token", "GitHub Token",
         r"(?P<secret>(?:ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9]{36})",
         Severity.CRITICAL),

        ("github-fine-grained-token", "GitHub Fine-Grained Token",
         r"(?P<secret>github_pat_[A-Za-z0-9_]{82})",
         Severity.CRITICAL),

        ("gitlab-token", "GitLab Personal Access Token",
         r"(?P<secret>glpat-[A-Za-z0-9_-]{20,})",
         Severity.CRITICAL),

        # ── Payment ──
        ("stripe-secret-key", "Stripe Secret Key",
         r"(?P<secret>(?:sk|rk)_live_[A-Za-z0-9]{24,})",
         Severity.CRITICAL),

        # ── Communication ──
        ("slack-token", "Slack Token",
         r"(?P<secret>xox[baprs]-[0-9]{10,}-[0-9A-Za-z-]{10,})",
         Severity.HIGH),

        ("slack-webhook-url", "Slack Webhook URL",
         r"(?P<secret>https://hooks\.slack\.com/services/T[A-Z0-9]{8,}/B[A-Z0-9]{8,}/[A-Za-z0-9]{24,})",
         Severity.MEDIUM),

        ("sendgrid-api-key", "SendGrid API Key",
         r"(?P<secret>SG\.[A-Za-z0-9_-]{22}\.[A-Za-z0-9_-]{43})",
         Severity.HIGH),

        # ── Package registries ──
        ("npm-token", "npm Token",
         r"(?P<secret>npm_[A-Za-z0-9]{36})",
         Severity.CRITICAL),

        ("pypi-token", "PyPI Token",
         r"(?P<secret>pypi-[A-Za-z0-9_-]{50,})",
         Severity.CRITICAL),

        # ── Private Keys ──
        ("private-key", "Private Key",
         r"(?P<secret>-----BEGIN (?:RSA |EC |DSA |OPENSSH |PGP |ENCRYPTED )?PRIVATE KEY(?: BLOCK)?-----)",
         Severity.CRITICAL),

        # ── Databases ──
        ("connection-string-credentials", "Connection String with Credentials",
         r"(?i)(?:mysql|postgres(?:ql)?|mongodb(?:\+srv)?|redis|mssql|amqp)://[^\s:/'\"@]+:(?P<secret>[^\s@'\"]{3,})@",
         Severity.CRITICAL),

        # ── Generic assignments ──
        ("generic-api-key", "Generic API Key",
         r"(?i)(?:api_key|apikey|api-key|x-api-key)" + _ASSIGN + r"(?P<secret>[A-Za-z0-9_\-]{20,})",
         Severity.MEDIUM),

        ("generic-secret", "Generic Secret/Token",
         r"(?i)(?:secret_key|client_secret|auth_token|access_token|jwt_secret)" + _ASSIGN
         + r"(?P<secret>[A-Za-z0-9_/+=.\-]{16,})",
         Severity.MEDIUM),
    ]

    def __init__(self, detector_id: str = "patterns", options=None, timeout=None) -> None:
        super().__init__(detector_id, options, timeout)
        disabled = set(self.options.get("disable_rules", []))
        self._rules = [
            (rule_id, title, re.compile(pattern), severity)
            for rule_id, title, pattern, severity in self.RULES
            if rule_id not in disabled
        ]

    def detect(self, request: ScanRequest, timeout: Optional[float] = None) -> List[Finding]:
        findings: List[Finding] = []
        for scan_file in request.readable:
            if scan_file.is_binary:
                continue
            findings.extend(self._scan_file(scan_file))
        return findings

    def _scan_file(self, scan_file: ScanFile) -> List[Finding]:
        findings: List[Finding] = []
        for line_no, line_offset, line in scan_file.lines():
            if ALLOW_MARKER in line:
                continue
            for rule_id, title, pattern, severity in self._rules:
                for match in pattern.finditer(line):
                    secret = match.group("secret")
                    start = line_offset + len(line[:match.start("secret")].encode("utf-8"))
                    findings.append(
                        Finding(
                            path=scan_file.path,
                            line=line_no,
                            detector=self.id,
                            rule_id=rule_id,
                            title=title,
                            redacted=redact(secret),
                            fingerprint=fingerprint(secret),
                            severity=severity,
                            start=start,
                            end=start + len(secret.encode("utf-8")),
                        )
                    )
        return findings
