"""
LeakGate Error Taxonomy

Every error that should stop a command derives from LeakGateError and
carries the process exit code the CLI uses for it. DetectorError is the
exception: the scan engine records it in the verdict instead of aborting.
"""

from __future__ import annotations

from enum import Enum


EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_ERROR = 2
EXIT_GATE_BROKEN = 3


class LeakGateError(Exception):
    """Base class for fatal LeakGate errors."""

    exit_code: int = EXIT_ERROR
    label: str = "error"


class ConfigError(LeakGateError):
    label = "configuration error"


class PreconditionError(LeakGateError):
    """One or more preconditions failed; nothing was written."""

    label = "precondition failed"

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class BaselineCorrupt(LeakGateError):
    label = "baseline corrupt"


class GitError(LeakGateError):
    label = "git error"


class VerificationFailed(LeakGateError):
    exit_code = EXIT_GATE_BROKEN
    label = "gate broken"


class DetectorErrorKind(Enum):
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    MALFORMED_OUTPUT = "malformed_output"
    FAILED = "failed"


class DetectorError(Exception):
    """A single detector could not produce a result."""

    def __init__(self, kind: DetectorErrorKind, detector: str, message: str) -> None:
        self.kind = kind
        self.detector = detector
        self.message = message
        super().__init__(f"{detector}: {kind.value}: {message}")
