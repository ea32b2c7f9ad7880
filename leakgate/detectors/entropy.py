"""
LeakGate Entropy Detector

Flags quoted string literals whose Shannon entropy is high enough to
look like key material rather than prose. Base64-like and hex strings
are measured against separate limits.
"""

from __future__ import annotations

import math
import re
import string
from collections import Counter
from typing import List, Optional

from leakgate.core.detector import BaseDetector, ScanRequest
from leakgate.core.finding import Finding, Severity, fingerprint, redact
from leakgate.detectors.patterns import ALLOW_MARKER

BASE64_CHARS = set(string.ascii_letters + string.digits + "+/=_-")
HEX_CHARS = set(string.hexdigits)

DEFAULT_BASE64_LIMIT = 4.5
DEFAULT_HEX_LIMIT = 3.0
DEFAULT_MIN_LENGTH = 20

_QUOTED = re.compile(r"""(?P<quote>['"])(?P<value>[^'"\s]+)(?P=quote)""")


def shannon_entropy(value: str) -> float:
    """Bits of entropy per character."""
    if not value:
        return 0.0
    length = len(value)
    return -sum((count / length) * math.log2(count / length) for count in Counter(value).values())


class EntropyDetector(BaseDetector):
    name = "entropy"

    def __init__(self, detector_id: str = "entropy", options=None, timeout=None) -> None:
        super().__init__(detector_id, options, timeout)
        self.base64_limit = float(self.options.get("base64_limit", DEFAULT_BASE64_LIMIT))
        self.hex_limit = float(self.options.get("hex_limit", DEFAULT_HEX_LIMIT))
        self.min_length = int(self.options.get("min_length", DEFAULT_MIN_LENGTH))

    def classify(self, value: str) -> Optional[str]:
        """Return the rule id ``value`` trips, or None."""
        if len(value) < self.min_length:
            return None
        chars = set(value)
        if chars <= HEX_CHARS:
            if shannon_entropy(value) > self.hex_limit:
                return "high-entropy-hex"
            return None
        if chars <= BASE64_CHARS and shannon_entropy(value) > self.base64_limit:
            return "high-entropy-base64"
        return None

    def detect(self, request: ScanRequest, timeout: Optional[float] = None) -> List[Finding]:
        findings: List[Finding] = []
        for scan_file in request.readable:
            if scan_file.is_binary:
                continue
            for line_no, line_offset, line in scan_file.lines():
                if ALLOW_MARKER in line:
                    continue
                for match in _QUOTED.finditer(line):
                    value = match.group("value")
                    rule_id = self.classify(value)
                    if rule_id is None:
                        continue
                    start = line_offset + len(line[:match.start("value")].encode("utf-8"))
                    findings.append(
                        Finding(
                            path=scan_file.path,
                            line=line_no,
                            detector=self.id,
                            rule_id=rule_id,
                            title="High Entropy String",
                            redacted=redact(value),
                            fingerprint=fingerprint(value),
                            severity=Severity.MEDIUM,
                            start=start,
                            end=start + len(value.encode("utf-8")),
                        )
                    )
        return findings
