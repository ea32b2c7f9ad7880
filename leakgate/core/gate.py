"""
LeakGate Gate

Wires configuration, detector registry, baseline store and scan engine
for one repository. The pre-commit hook, `leakgate scan` and the
self-verification runner all go through this object, so they share one
code path.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from leakgate.baseline.store import Baseline, BaselineStore
from leakgate.core.config import LeakGateConfig
from leakgate.core.detector import ScanRequest
from leakgate.core.engine import ScanEngine, ScanVerdict
from leakgate.core.errors import PreconditionError
from leakgate.core.finding import Finding
from leakgate.core.git import GitRepo
from leakgate.detectors.registry import DetectorRegistry, build_registry


logger = logging.getLogger(__name__)


class Gate:
    """The configured secret gate of one repository."""

    def __init__(self, repo: GitRepo, config: LeakGateConfig,
                 registry: Optional[DetectorRegistry] = None) -> None:
        self.repo = repo
        self.config = config
        self.registry = registry if registry is not None else build_registry(config)
        self.store = BaselineStore(config.resolve_baseline(repo.root))
        self.engine = ScanEngine(self.registry, config)

    @classmethod
    def open(cls, repo: GitRepo, config_path: Optional[Path] = None) -> "Gate":
        """Load configuration for ``repo``; ConfigError on a malformed file."""
        config = LeakGateConfig.load(config_path, root=repo.root)
        return cls(repo, config)

    def relative(self, paths: Sequence[str]) -> list[str]:
        """Express user-supplied paths relative to the repository root."""
        root = self.repo.root.resolve()
        result = []
        for raw in paths:
            path = Path(raw)
            if not path.is_absolute():
                path = Path.cwd() / path
            try:
                result.append(path.resolve().relative_to(root).as_posix())
            except ValueError:
                raise PreconditionError([f"{raw} is outside the repository {root}"]) from None
        return result

    def scan_staged(self, paths: Optional[Sequence[str]] = None) -> ScanVerdict:
        """
        Scan staged content, exactly as the pre-commit hook does.

        Args:
            paths: Repository-relative paths; defaults to every staged
                added, copied, modified, renamed or type-changed file.
        """
        baseline = self.store.load()
        if paths is None:
            paths = self.repo.staged_files()
        request = ScanRequest.from_index(self.repo, paths)
        return self.engine.scan(request, baseline)

    def scan_disk(self, paths: Sequence[str], baseline: Optional[Baseline] = None) -> ScanVerdict:
        """Scan work-tree content of repository-relative paths."""
        if baseline is None:
            baseline = self.store.load()
        request = ScanRequest.from_disk(self.repo.root, paths)
        return self.engine.scan(request, baseline)

    def accept(self, paths: Sequence[str], accepted_by: Optional[str] = None) -> tuple[list[Finding], Baseline]:
        """
        Scan ``paths`` ignoring the baseline and record every finding as
        reviewed. Returns the newly accepted findings and the new baseline.
        """
        current = self.store.load()
        verdict = self.scan_disk(paths, baseline=Baseline())
        for run in verdict.detector_errors:
            logger.warning("accept: detector %s did not complete (%s); its findings are not recorded",
                           run.detector, run.error)
        for error in verdict.file_errors:
            logger.warning("accept: %s was not scanned (%s); its findings are not recorded",
                           error.path, error.reason)
        new = [f for f in verdict.findings if f.key not in current]
        updated = self.store.accept(verdict.findings, current,
                                    accepted_by=accepted_by or self.repo.user_email())
        self.store.persist(updated)
        logger.info("accepted %d new finding(s) into %s", len(new), self.store.path)
        return new, updated
