"""
LeakGate Self-Verification Runner

Proves the installed gate blocks a known-bad input without a real commit:

1. create a uniquely named scratch area inside the work tree
2. write a clean and a dirty fixture
3. stage both and scan them through Gate.scan_staged (the hook's path)
4. assert the dirty fixture blocks and the clean one does not
5. unstage and delete the scratch area, whatever happened

The result is about the gate, not about the fixtures: PASS means the gate
is wired correctly, FAIL means a secret would have slipped through.
"""

from __future__ import annotations

import contextlib
import logging
import secrets
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from leakgate.core.engine import ScanVerdict
from leakgate.core.gate import Gate
from leakgate.install.installer import HOOK_MARKER, SCRATCH_PREFIX


logger = logging.getLogger(__name__)

SCRATCH_MARKER = ".leakgate-scratch"

CLEAN_FIXTURE = "clean.py"
DIRTY_FIXTURE = "dirty.py"


def clean_fixture() -> str:
    return "print('This is a clean file')\n"


def dirty_fixture() -> str:
    # Split literals: this module must not match its own detectors.
    access_key = "AKIA" + "IOSFODNN7" + "EXAMPLE"
    high_entropy = "q7Zr2XkP9mWv4TbN" + "8sLc1YdH6fGj3RxE"
    return (
        f"aws_key = '{access_key}'\n"
        f"api_secret = \"{high_entropy}\"\n"
    )


@dataclass
class VerificationResult:
    passed: bool
    reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    verdict: Optional[ScanVerdict] = None
    scratch: Optional[Path] = None


class SelfVerificationRunner:
    """Runs the block/allow self-test against a repository's gate."""

    def __init__(self, gate: Gate, stage: bool = True) -> None:
        self.gate = gate
        self.stage = stage

    @property
    def root(self) -> Path:
        return self.gate.repo.root

    # ── Scratch area ──

    def remove_stale_scratch(self) -> list[Path]:
        """Delete leftovers of earlier runs; only directories carrying our marker."""
        removed = []
        for candidate in sorted(self.root.glob(f"{SCRATCH_PREFIX}*")):
            if candidate.is_dir() and not candidate.is_symlink() and (candidate / SCRATCH_MARKER).is_file():
                logger.info("removing stale scratch area %s", candidate)
                self._unstage(candidate)
                shutil.rmtree(candidate)
                removed.append(candidate)
        return removed

    @contextlib.contextmanager
    def scratch_area(self) -> Iterator[Path]:
        """A fresh, uniquely named directory, unstaged and removed on exit."""
        while True:
            path = self.root / f"{SCRATCH_PREFIX}{secrets.token_hex(6)}"
            try:
                path.mkdir()
            except FileExistsError:
                continue
            break
        try:
            (path / SCRATCH_MARKER).write_text("leakgate self-verification scratch area\n", encoding="utf-8")
            yield path
        finally:
            try:
                if self.stage:
                    self._unstage(path)
            finally:
                shutil.rmtree(path, ignore_errors=True)
                logger.debug("removed scratch area %s", path)

    def _unstage(self, path: Path) -> None:
        self.gate.repo.unstage(path.relative_to(self.root).as_posix())

    # ── Checks ──

    def hook_problem(self) -> Optional[str]:
        hook = self.gate.repo.hooks_dir() / "pre-commit"
        if not hook.is_file():
            return f"pre-commit hook is not installed ({hook}); run `leakgate install`"
        try:
            text = hook.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            return f"cannot read pre-commit hook: {exc}"
        if HOOK_MARKER not in text:
            return f"pre-commit hook at {hook} does not run leakgate"
        return None

    def run(self) -> VerificationResult:
        result = VerificationResult(passed=False)

        hook_problem = self.hook_problem()
        if hook_problem:
            result.reasons.append(hook_problem)

        self.remove_stale_scratch()
        with self.scratch_area() as scratch:
            result.scratch = scratch
            rel = scratch.relative_to(self.root).as_posix()
            clean_path = f"{rel}/{CLEAN_FIXTURE}"
            dirty_path = f"{rel}/{DIRTY_FIXTURE}"
            (scratch / CLEAN_FIXTURE).write_text(clean_fixture(), encoding="utf-8")
            (scratch / DIRTY_FIXTURE).write_text(dirty_fixture(), encoding="utf-8")
            logger.debug("fixtures written to %s", scratch)

            if self.stage:
                self.gate.repo.add([clean_path, dirty_path], force=True)
                verdict = self.gate.scan_staged([clean_path, dirty_path])
            else:
                verdict = self.gate.scan_disk([clean_path, dirty_path])
            result.verdict = verdict

        self._assess(result, verdict, clean_path, dirty_path)
        result.passed = not result.reasons
        return result

    def _assess(self, result: VerificationResult, verdict: ScanVerdict,
                clean_path: str, dirty_path: str) -> None:
        dirty_hits = [f for f in verdict.findings if f.path == dirty_path]
        clean_hits = [f for f in verdict.findings if f.path == clean_path]

        if not self.gate.registry:
            result.reasons.append("no detectors are enabled")
        if verdict.passed:
            result.reasons.append("the scan passed a file containing a secret")
        if not dirty_hits:
            result.reasons.append(f"no finding reported for the dirty fixture ({DIRTY_FIXTURE})")
        if clean_hits:
            rules = ", ".join(sorted({f.rule_id for f in clean_hits}))
            result.reasons.append(f"the clean fixture ({CLEAN_FIXTURE}) was flagged: {rules}")

        for error in verdict.file_errors:
            result.reasons.append(f"fixture {error.path} could not be read: {error.reason}")

        flagged_by = {f.detector for f in dirty_hits}
        for run in verdict.detector_runs:
            if run.error:
                result.warnings.append(f"detector {run.detector} failed: {run.error}")
            elif run.detector not in flagged_by:
                result.warnings.append(f"detector {run.detector} did not flag the dirty fixture")
