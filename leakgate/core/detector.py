"""
LeakGate Detector Interface

A detector inspects the files of a scan request and returns findings.
Detectors must not touch the repository; they only read the request.

Detectors:
- PatternDetector (built-in regular expressions)
- EntropyDetector (built-in Shannon entropy)
- GitleaksDetector, DetectSecretsDetector (external binaries)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Sequence

from leakgate.core.finding import Finding

if TYPE_CHECKING:
    from leakgate.core.git import GitRepo


logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8000


@dataclass(frozen=True)
class ScanFile:
    """One file of a scan request: content, or the reason it is missing."""

    path: str
    content: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def is_binary(self) -> bool:
        return self.content is not None and b"\0" in self.content[:BINARY_SNIFF_BYTES]

    def lines(self) -> Iterator[tuple[int, int, str]]:
        """Yield (line number, byte offset of line start, decoded line)."""
        if not self.content:
            return
        # Only "\n" ends a line, matching git line numbers
        chunks = self.content.split(b"\n")
        if self.content.endswith(b"\n"):
            chunks.pop()
        offset = 0
        for line_no, raw in enumerate(chunks, start=1):
            yield line_no, offset, raw.rstrip(b"\r").decode("utf-8", errors="replace")
            offset += len(raw) + 1


@dataclass(frozen=True)
class ScanRequest:
    files: tuple[ScanFile, ...] = ()

    def __len__(self) -> int:
        return len(self.files)

    @property
    def readable(self) -> list[ScanFile]:
        return [f for f in self.files if f.content is not None]

    @classmethod
    def from_disk(cls, root: Path, paths: Sequence[str]) -> "ScanRequest":
        """Build a request from work-tree files."""
        files = []
        for rel in paths:
            try:
                content = (root / rel).read_bytes()
            except OSError as exc:
                files.append(ScanFile(path=rel, error=exc.strerror or str(exc)))
            else:
                files.append(ScanFile(path=rel, content=content))
        return cls(tuple(files))

    @classmethod
    def from_index(cls, repo: "GitRepo", paths: Sequence[str]) -> "ScanRequest":
        """Build a request from staged content, as the pre-commit hook sees it."""
        files = []
        for rel in paths:
            try:
                content = repo.read_staged(rel)
            except OSError as exc:
                files.append(ScanFile(path=rel, error=str(exc)))
            else:
                files.append(ScanFile(path=rel, content=content))
        return cls(tuple(files))


class BaseDetector(ABC):
    """
    Detector interface.
    Each detector must implement detect().
    """

    name: str = "base"
    # Executables that must be on PATH for the detector to work
    requires: tuple[str, ...] = ()

    def __init__(self, detector_id: str, options: Optional[dict[str, Any]] = None,
                 timeout: Optional[float] = None) -> None:
        self.id = detector_id
        self.options = options or {}
        self.timeout = timeout

    def available(self) -> Optional[str]:
        """Return a problem description when the detector cannot run, else None."""
        return None

    @abstractmethod
    def detect(self, request: ScanRequest, timeout: Optional[float] = None) -> List[Finding]:
        """
        Scan the request and return findings.
        Raises DetectorError when no result can be produced.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"
