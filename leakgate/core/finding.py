"""
LeakGate Finding Model

A Finding represents one candidate secret found in one file.
Findings never carry the raw secret: only a masked form for display and
a fingerprint (hash of the matched span) for baseline matching.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple, Optional


class Severity(Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @classmethod
    def from_string(cls, value: str) -> "Severity":
        """Parse a severity from a string (case-insensitive)."""
        return cls[value.upper()]

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __ge__(self, other: "Severity") -> bool:
        return self.rank >= other.rank

    def __gt__(self, other: "Severity") -> bool:
        return self.rank > other.rank

    def __le__(self, other: "Severity") -> bool:
        return not self.__gt__(other)

    def __lt__(self, other: "Severity") -> bool:
        return not self.__ge__(other)


_SEVERITY_ORDER = [Severity.INFO, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class BaselineKey(NamedTuple):
    """Suppression key. Deliberately excludes the line number."""

    path: str
    rule_id: str
    fingerprint: str


def fingerprint(secret: str) -> str:
    """Stable hash of a matched span."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def redact(secret: str, visible_chars: int = 4) -> str:
    """Mask a secret, keeping at most a short prefix and suffix."""
    if len(secret) <= visible_chars * 3:
        return "*" * len(secret)
    return secret[:visible_chars] + "*" * (len(secret) - 2 * visible_chars) + secret[-visible_chars:]


@dataclass(frozen=True)
class Finding:
    path: str
    line: int
    detector: str
    rule_id: str
    title: str
    redacted: str
    fingerprint: str
    severity: Severity = Severity.HIGH
    start: Optional[int] = None
    end: Optional[int] = None

    @property
    def key(self) -> BaselineKey:
        return BaselineKey(self.path, self.rule_id, self.fingerprint)

    def sort_key(self) -> tuple:
        return (self.path, self.line, self.detector, self.rule_id, self.start or 0, self.fingerprint)

    def display(self) -> str:
        """Human-readable output for console printing."""
        parts = [
            f"[{self.severity.value}] {self.title}",
            f"  Rule: {self.rule_id} ({self.detector})",
            f"  Location: {self.path}:{self.line}",
            f"  Match: {self.redacted}",
        ]
        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert finding to a dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "path": self.path,
            "line": self.line,
            "detector": self.detector,
            "rule_id": self.rule_id,
            "title": self.title,
            "severity": self.severity.value,
            "redacted": self.redacted,
            "fingerprint": self.fingerprint,
        }
        if self.start is not None:
            result["start"] = self.start
            result["end"] = self.end
        return result
