"""
Tests for the Scan Engine and the Gate
"""

import json
import logging
import os
import subprocess
import sys
from pathlib import Path

import pytest

from conftest import AWS_KEY, BrokenDetector, CrashingDetector, FixedDetector, git, make_finding
from leakgate.baseline.store import Baseline, BaselineStore
from leakgate.core.config import LeakGateConfig
from leakgate.core.detector import ScanFile, ScanRequest
from leakgate.core.engine import RunStatus, ScanEngine
from leakgate.core.errors import BaselineCorrupt, DetectorErrorKind, PreconditionError
from leakgate.core.gate import Gate
from leakgate.core.git import GitRepo
from leakgate.detectors.registry import DetectorRegistry, build_registry


PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Six keyword findings on one line, without offsets, as detect-secrets reports them
TIED_FINDINGS_SCRIPT = """
import json
from leakgate.baseline.store import Baseline
from leakgate.core.config import LeakGateConfig
from leakgate.core.detector import BaseDetector, ScanFile, ScanRequest
from leakgate.core.engine import ScanEngine
from leakgate.core.finding import Finding
from leakgate.detectors.registry import DetectorRegistry


class Keywords(BaseDetector):
    name = "keywords"

    def detect(self, request, timeout=None):
        return [
            Finding(path="a.py", line=1, detector=self.id, rule_id="Secret Keyword",
                    title="Secret Keyword", redacted="<hashed>", fingerprint=fp)
            for fp in ("fff6", "aaa1", "ddd4", "bbb2", "eee5", "ccc3")
        ]


engine = ScanEngine(DetectorRegistry([Keywords("keywords")]), LeakGateConfig(exclude=[]))
verdict = engine.scan(ScanRequest((ScanFile("a.py", content=b"x"),)), Baseline())
print(json.dumps([f.fingerprint for f in verdict.findings]))
"""


def engine_for(*detectors, **config_kwargs) -> ScanEngine:
    config_kwargs.setdefault("exclude", [])
    config_kwargs.setdefault("timeout", 10)
    return ScanEngine(DetectorRegistry(list(detectors)), LeakGateConfig(**config_kwargs))


def one_file(path: str = "app.py", content: bytes = b"x = 1\n") -> ScanRequest:
    return ScanRequest((ScanFile(path, content=content),))


class TestScanEngine:
    """Tests for ScanEngine."""

    def test_empty_request_passes(self):
        """Test an empty request is a vacuous pass without running detectors."""
        detector = FixedDetector(findings=[make_finding()])
        verdict = engine_for(detector).scan(ScanRequest(), Baseline())

        assert verdict.passed
        assert verdict.findings == []
        assert detector.calls == 0

    def test_no_detectors_passes(self):
        """Test an empty registry checks nothing and passes."""
        verdict = engine_for().scan(one_file(), Baseline())

        assert verdict.passed
        assert verdict.detector_runs == []

    def test_findings_block(self):
        """Test unsuppressed findings block the verdict."""
        verdict = engine_for(FixedDetector(findings=[make_finding()])).scan(one_file(), Baseline())

        assert not verdict.passed
        assert verdict.blocked_by_findings
        assert verdict.detector_runs[0].status is RunStatus.OK
        assert verdict.detector_runs[0].findings == 1

    def test_findings_sorted_and_deduplicated(self):
        """Test the union of findings is de-duplicated and sorted."""
        late = make_finding(path="b.py", line=1)
        early = make_finding(path="a.py", line=7)
        engine = engine_for(
            FixedDetector("one", findings=[late, early]),
            FixedDetector("two", findings=[early]),
        )

        verdict = engine.scan(one_file(), Baseline())

        assert verdict.findings == [early, late]

    def test_baseline_suppression_counted(self):
        """Test baseline hits are removed and counted."""
        accepted = make_finding(path="a.py")
        fresh = make_finding(path="b.py")
        baseline = BaselineStore.accept([accepted], Baseline(), accepted_by="rev")

        verdict = engine_for(FixedDetector(findings=[accepted, fresh])).scan(one_file(), baseline)

        assert verdict.findings == [fresh]
        assert verdict.suppressed == 1

    def test_detector_failure_is_recorded(self):
        """Test a failing detector does not abort the scan."""
        engine = engine_for(BrokenDetector(), FixedDetector(findings=[]))
        verdict = engine.scan(one_file(), Baseline())

        assert verdict.passed
        assert [run.detector for run in verdict.detector_errors] == ["broken"]
        assert verdict.detector_errors[0].error_kind is DetectorErrorKind.FAILED

    def test_detector_failure_blocks_when_fail_closed(self):
        """Test detector errors block in fail-closed mode."""
        verdict = engine_for(BrokenDetector(), fail_closed=True).scan(one_file(), Baseline())

        assert not verdict.passed
        assert verdict.blocked_by_errors
        assert not verdict.blocked_by_findings

    def test_crashing_detector_is_contained(self):
        """Test an unexpected exception becomes a failed run."""
        verdict = engine_for(CrashingDetector("crashing")).scan(one_file(), Baseline())

        run = verdict.detector_runs[0]
        assert run.status is RunStatus.FAILED
        assert "boom" in run.error

    def test_slow_detector_times_out(self):
        """Test detectors still running at the overall timeout are abandoned."""
        engine = engine_for(FixedDetector("fast", findings=[make_finding()]), FixedDetector("slow", delay=1.0),
                            timeout=0.2)
        verdict = engine.scan(one_file(), Baseline())

        by_id = {run.detector: run for run in verdict.detector_runs}
        assert by_id["slow"].status is RunStatus.TIMEOUT
        assert by_id["fast"].status is RunStatus.OK
        assert len(verdict.findings) == 1

    def test_excluded_files_are_dropped(self):
        """Test exclude globs match both full paths and basenames."""
        detector = FixedDetector(findings=[make_finding()])
        engine = engine_for(detector, exclude=["yarn.lock", "vendor/*"])
        request = ScanRequest((
            ScanFile("web/yarn.lock", content=b"x"),
            ScanFile("vendor/lib.js", content=b"x"),
        ))

        verdict = engine.scan(request, Baseline())

        assert verdict.files_scanned == 0
        assert verdict.passed
        assert detector.calls == 0

    def test_unreadable_files(self):
        """Test unreadable files become file errors, blocking only when fail-closed."""
        request = ScanRequest((ScanFile("ok.py", content=b"x"), ScanFile("gone.py", error="No such file")))

        open_verdict = engine_for(FixedDetector()).scan(request, Baseline())
        closed_verdict = engine_for(FixedDetector(), fail_closed=True).scan(request, Baseline())

        assert [e.path for e in open_verdict.file_errors] == ["gone.py"]
        assert open_verdict.files_scanned == 1
        assert open_verdict.passed
        assert not closed_verdict.passed

    def test_scan_is_deterministic(self, builtin_config: LeakGateConfig, secrets_test_file: Path):
        """Test repeated scans render byte-identical verdicts."""
        engine = ScanEngine(build_registry(builtin_config), builtin_config)
        request = ScanRequest((ScanFile("secrets.py", content=secrets_test_file.read_bytes()),))

        first = json.dumps(engine.scan(request, Baseline()).to_dict())
        second = json.dumps(engine.scan(request, Baseline()).to_dict())

        assert first == second
        assert "elapsed" not in first

    def test_tied_findings_order_is_stable_across_hash_seeds(self):
        """Test findings tied on location are ordered by fingerprint in every process."""
        orders = set()
        for seed in ("0", "1", "7", "42", "1234"):
            env = dict(os.environ, PYTHONHASHSEED=seed)
            env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(PROJECT_ROOT), env.get("PYTHONPATH")]))
            result = subprocess.run([sys.executable, "-c", TIED_FINDINGS_SCRIPT],
                                    capture_output=True, text=True, env=env, check=True)
            orders.add(result.stdout.strip())

        assert len(orders) == 1
        assert json.loads(orders.pop()) == ["aaa1", "bbb2", "ccc3", "ddd4", "eee5", "fff6"]

    def test_tied_findings_sorted_by_fingerprint(self):
        """Test the input order of tied findings does not leak into the verdict."""
        tied = [make_finding(path="a.py", line=1, secret=f"secret-{n}") for n in range(6)]
        forward = engine_for(FixedDetector(findings=tied)).scan(one_file(), Baseline())
        backward = engine_for(FixedDetector(findings=tied[::-1])).scan(one_file(), Baseline())

        assert forward.findings == backward.findings
        assert [f.fingerprint for f in forward.findings] == sorted(f.fingerprint for f in tied)


class TestGate:
    """Tests for Gate, the path shared by the hook, scan and verify."""

    def test_scan_staged_reads_index_not_work_tree(self, repo: GitRepo, builtin_config: LeakGateConfig):
        """Test the staged blob is scanned, not the file on disk."""
        target = repo.root / "app.py"
        target.write_text(f"key = '{AWS_KEY}'\n")
        git(repo.root, "add", "app.py")
        target.write_text("key = None\n")

        verdict = Gate(repo, builtin_config).scan_staged()

        assert [f.rule_id for f in verdict.findings] == ["aws-access-key-id"]
        assert verdict.findings[0].path == "app.py"

    def test_clean_index_with_dirty_work_tree(self, repo: GitRepo, builtin_config: LeakGateConfig):
        """Test an unstaged secret does not block."""
        target = repo.root / "app.py"
        target.write_text("key = None\n")
        git(repo.root, "add", "app.py")
        target.write_text(f"key = '{AWS_KEY}'\n")

        assert Gate(repo, builtin_config).scan_staged().passed

    def test_corrupt_baseline_aborts_before_detectors(self, repo: GitRepo, builtin_config: LeakGateConfig):
        """Test a corrupt baseline raises before any detector runs."""
        detector = FixedDetector(findings=[make_finding()])
        gate = Gate(repo, builtin_config, registry=DetectorRegistry([detector]))
        gate.store.path.write_text("{broken")
        (repo.root / "app.py").write_text("x = 1\n")
        git(repo.root, "add", "app.py")

        with pytest.raises(BaselineCorrupt):
            gate.scan_staged()
        assert detector.calls == 0

    def test_accept_then_scan_is_clean(self, repo: GitRepo, builtin_config: LeakGateConfig):
        """Test accepted findings are suppressed by the next scan."""
        (repo.root / "app.py").write_text(f"key = '{AWS_KEY}'\n")
        gate = Gate(repo, builtin_config)

        accepted, baseline = gate.accept(["app.py"])
        verdict = gate.scan_disk(["app.py"])

        assert len(accepted) == 1
        assert verdict.findings == []
        assert verdict.suppressed == 1
        assert baseline.entries[accepted[0].key].accepted_by == "reviewer@example.com"
        assert gate.store.load() == baseline

    def test_accept_is_idempotent(self, repo: GitRepo, builtin_config: LeakGateConfig):
        """Test accepting twice adds nothing new."""
        (repo.root / "app.py").write_text(f"key = '{AWS_KEY}'\n")
        gate = Gate(repo, builtin_config)

        _, first = gate.accept(["app.py"])
        accepted, second = gate.accept(["app.py"])

        assert accepted == []
        assert second == first

    def test_scan_never_writes_baseline(self, repo: GitRepo, builtin_config: LeakGateConfig):
        """Test scanning leaves the baseline file alone."""
        (repo.root / "app.py").write_text(f"key = '{AWS_KEY}'\n")
        gate = Gate(repo, builtin_config)

        gate.scan_disk(["app.py"])

        assert not gate.store.path.exists()

    def test_relative_paths(self, repo: GitRepo, builtin_config: LeakGateConfig):
        """Test user paths are made repository-relative and checked."""
        gate = Gate(repo, builtin_config)
        (repo.root / "src").mkdir()

        assert gate.relative(["src/app.py", str(repo.root / "b.py")]) == ["src/app.py", "b.py"]
        with pytest.raises(PreconditionError):
            gate.relative([str(repo.root.parent / "outside.py")])

    def test_renamed_and_modified_file_is_scanned(self, repo: GitRepo, builtin_config: LeakGateConfig):
        """Test a secret added to a file moved with git mv still blocks."""
        settings = repo.root / "settings.py"
        settings.write_text("".join(f"option_{n} = {n}\n" for n in range(40)))
        git(repo.root, "add", "settings.py")
        git(repo.root, "commit", "-q", "-m", "settings")
        git(repo.root, "mv", "settings.py", "prod_settings.py")
        with (repo.root / "prod_settings.py").open("a") as handle:
            handle.write(f"aws_key = '{AWS_KEY}'\n")
        git(repo.root, "add", "prod_settings.py")

        verdict = Gate(repo, builtin_config).scan_staged()

        assert repo.staged_files() == ["prod_settings.py"]
        assert not verdict.passed
        assert [(f.path, f.line, f.rule_id) for f in verdict.findings] == [
            ("prod_settings.py", 41, "aws-access-key-id"),
        ]

    def test_accept_warns_about_incomplete_scan(self, repo: GitRepo, builtin_config: LeakGateConfig,
                                                caplog, monkeypatch):
        """Test detector and file errors during accept are reported, not swallowed."""
        monkeypatch.setattr(logging.getLogger("leakgate"), "propagate", True)
        (repo.root / "app.py").write_text("x = 1\n")
        gate = Gate(repo, builtin_config, registry=DetectorRegistry([BrokenDetector(), FixedDetector()]))

        with caplog.at_level(logging.WARNING, logger="leakgate.core.gate"):
            accepted, _ = gate.accept(["app.py", "gone.py"])

        assert accepted == []
        messages = [r.getMessage() for r in caplog.records if r.name == "leakgate.core.gate"]
        assert any("detector broken did not complete" in m for m in messages)
        assert any("gone.py was not scanned" in m for m in messages)
