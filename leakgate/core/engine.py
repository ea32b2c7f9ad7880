"""
LeakGate Scan Engine

Runs every registered detector over a scan request, concurrently, joins
all of them, applies baseline suppression and computes the verdict.

A failing detector never aborts the scan: its error is recorded in the
verdict and only blocks the commit in fail-closed mode.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from leakgate.baseline.store import Baseline, BaselineStore
from leakgate.core.config import LeakGateConfig
from leakgate.core.detector import BaseDetector, ScanRequest
from leakgate.core.errors import DetectorError, DetectorErrorKind
from leakgate.core.finding import Finding
from leakgate.detectors.registry import DetectorRegistry


logger = logging.getLogger(__name__)


class RunStatus(Enum):
    OK = "ok"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class DetectorRun:
    """Outcome of one detector for one scan."""

    detector: str
    status: RunStatus
    findings: int = 0
    elapsed: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[DetectorErrorKind] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "detector": self.detector,
            "status": self.status.value,
            "findings": self.findings,
        }
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind.value if self.error_kind else None
        return result


@dataclass(frozen=True)
class FileError:
    path: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "reason": self.reason}


@dataclass
class ScanVerdict:
    """Aggregate result of one scan."""

    findings: list[Finding] = field(default_factory=list)
    suppressed: int = 0
    detector_runs: list[DetectorRun] = field(default_factory=list)
    file_errors: list[FileError] = field(default_factory=list)
    files_scanned: int = 0
    fail_closed: bool = False

    @property
    def detector_errors(self) -> list[DetectorRun]:
        return [run for run in self.detector_runs if run.status is not RunStatus.OK]

    @property
    def blocked_by_findings(self) -> bool:
        return bool(self.findings)

    @property
    def blocked_by_errors(self) -> bool:
        return self.fail_closed and bool(self.detector_errors or self.file_errors)

    @property
    def passed(self) -> bool:
        return not self.blocked_by_findings and not self.blocked_by_errors

    def to_dict(self) -> dict[str, Any]:
        """Deterministic rendering: no timings."""
        return {
            "passed": self.passed,
            "fail_closed": self.fail_closed,
            "files_scanned": self.files_scanned,
            "suppressed": self.suppressed,
            "findings": [f.to_dict() for f in self.findings],
            "detectors": [run.to_dict() for run in self.detector_runs],
            "file_errors": [e.to_dict() for e in self.file_errors],
        }


class ScanEngine:
    """Dispatches a scan request to all registered detectors."""

    def __init__(self, registry: DetectorRegistry, config: LeakGateConfig) -> None:
        self.registry = registry
        self.config = config

    def is_excluded(self, path: str) -> bool:
        name = path.rsplit("/", 1)[-1]
        return any(
            fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(name, pattern)
            for pattern in self.config.exclude
        )

    def scan(self, request: ScanRequest, baseline: Baseline) -> ScanVerdict:
        files = tuple(f for f in request.files if not self.is_excluded(f.path))
        if len(files) != len(request.files):
            logger.debug("excluded %d file(s)", len(request.files) - len(files))
        filtered = ScanRequest(files)

        verdict = ScanVerdict(fail_closed=self.config.fail_closed, files_scanned=len(filtered.readable))
        verdict.file_errors = sorted(
            (FileError(f.path, f.error or "unreadable") for f in files if f.content is None),
            key=lambda e: e.path,
        )
        if not self.registry:
            logger.warning("no detectors enabled; nothing is being checked")
            return verdict
        if not filtered.readable:
            return verdict

        runs, raw_findings = self._run_detectors(filtered)
        verdict.detector_runs = runs

        unique = sorted(set(raw_findings), key=Finding.sort_key)
        kept = BaselineStore.suppress(unique, baseline)
        verdict.suppressed = len(unique) - len(kept)
        verdict.findings = kept
        logger.debug(
            "scan: %d file(s), %d finding(s), %d suppressed, %d detector error(s)",
            verdict.files_scanned, len(kept), verdict.suppressed, len(verdict.detector_errors),
        )
        return verdict

    def _run_detectors(self, request: ScanRequest) -> tuple[list[DetectorRun], list[Finding]]:
        detectors = list(self.registry.values())
        workers = max(1, min(len(detectors), os.cpu_count() or 1))
        timeout = self.config.timeout

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="leakgate-detector")
        try:
            futures: dict[Future, BaseDetector] = {
                executor.submit(_timed_detect, detector, request, detector.timeout or timeout): detector
                for detector in detectors
            }
            _, not_done = wait(futures, timeout=timeout)
        finally:
            # stragglers are abandoned, never joined
            executor.shutdown(wait=False, cancel_futures=True)

        runs: list[DetectorRun] = []
        findings: list[Finding] = []
        for future, detector in futures.items():
            if future in not_done:
                logger.warning("detector %s did not finish within %ss", detector.id, timeout)
                runs.append(DetectorRun(
                    detector=detector.id,
                    status=RunStatus.TIMEOUT,
                    elapsed=timeout,
                    error=f"no result after {timeout:g}s",
                    error_kind=DetectorErrorKind.TIMEOUT,
                ))
                continue
            run, found = future.result()
            runs.append(run)
            findings.extend(found)
        return runs, findings


def _timed_detect(detector: BaseDetector, request: ScanRequest,
                  timeout: Optional[float]) -> tuple[DetectorRun, list[Finding]]:
    started = time.monotonic()
    try:
        found = detector.detect(request, timeout=timeout)
    except DetectorError as exc:
        elapsed = time.monotonic() - started
        logger.warning("detector %s failed: %s", detector.id, exc.message)
        status = RunStatus.TIMEOUT if exc.kind is DetectorErrorKind.TIMEOUT else RunStatus.FAILED
        return DetectorRun(detector.id, status, 0, elapsed, exc.message, exc.kind), []
    except Exception as exc:
        elapsed = time.monotonic() - started
        logger.exception("detector %s crashed", detector.id)
        return DetectorRun(detector.id, RunStatus.FAILED, 0, elapsed, f"crashed: {exc}",
                           DetectorErrorKind.FAILED), []
    elapsed = time.monotonic() - started
    return DetectorRun(detector.id, RunStatus.OK, len(found), elapsed), list(found)
