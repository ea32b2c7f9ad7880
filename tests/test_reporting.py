"""
Tests for Reporting Module
"""

import json
from pathlib import Path

import pytest

from conftest import AWS_KEY, make_finding
from leakgate.core.engine import DetectorRun, FileError, RunStatus, ScanVerdict
from leakgate.core.errors import DetectorErrorKind
from leakgate.core.finding import Severity
from leakgate.reporting.console import ConsoleReporter
from leakgate.reporting.json_reporter import JSONReporter
from leakgate.reporting.sarif import SARIFReporter
from leakgate.verify.runner import VerificationResult


@pytest.fixture
def blocked_verdict() -> ScanVerdict:
    return ScanVerdict(
        findings=[
            make_finding(path="a.py"),
            make_finding(path="b.py", rule_id="high-entropy-base64", detector="entropy",
                         severity=Severity.MEDIUM),
        ],
        suppressed=2,
        detector_runs=[
            DetectorRun("patterns", RunStatus.OK, findings=1, elapsed=0.01),
            DetectorRun("entropy", RunStatus.OK, findings=1, elapsed=0.02),
        ],
        files_scanned=2,
    )


@pytest.fixture
def degraded_verdict() -> ScanVerdict:
    return ScanVerdict(
        detector_runs=[
            DetectorRun("patterns", RunStatus.OK),
            DetectorRun("gitleaks", RunStatus.FAILED, error="'gitleaks' not found on PATH",
                        error_kind=DetectorErrorKind.UNAVAILABLE),
        ],
        file_errors=[FileError("gone.py", "No such file")],
        files_scanned=1,
        fail_closed=True,
    )


class TestConsoleReporter:
    """Tests for ConsoleReporter."""

    def test_passed_report(self, capsys):
        """Test a clean verdict prints the pass banner."""
        ConsoleReporter(target="/repo").report(ScanVerdict(files_scanned=3))
        out = capsys.readouterr().out

        assert "LeakGate Secret Scan" in out
        assert "PASSED" in out
        assert "Files scanned: 3" in out

    def test_blocked_report(self, capsys, blocked_verdict: ScanVerdict):
        """Test findings print the blocked banner and redacted matches only."""
        ConsoleReporter(target="/repo").report(blocked_verdict)
        out = capsys.readouterr().out

        assert "COMMIT BLOCKED" in out
        assert "Detailed Findings" in out
        assert "a.py:3" in out
        assert "2 finding(s) suppressed" in out
        assert AWS_KEY not in out

    def test_gate_error_report(self, capsys, degraded_verdict: ScanVerdict):
        """Test fail-closed detector errors print a distinct banner."""
        ConsoleReporter(target="/repo").report(degraded_verdict)
        captured = capsys.readouterr()

        assert "GATE ERROR" in captured.out
        assert "COMMIT BLOCKED" not in captured.out
        assert "gitleaks" in captured.err
        assert "gone.py" in captured.err

    def test_quiet_mode(self, capsys, blocked_verdict: ScanVerdict):
        """Test quiet mode skips the header but keeps findings."""
        ConsoleReporter(target="/repo", quiet=True).report(blocked_verdict)
        out = capsys.readouterr().out

        assert "LeakGate Secret Scan" not in out
        assert "COMMIT BLOCKED" in out

    def test_verification_banners(self, capsys):
        """Test PASS and FAIL verification banners differ."""
        reporter = ConsoleReporter(target="/repo")

        reporter.report_verification(VerificationResult(passed=True))
        passed = capsys.readouterr()
        reporter.report_verification(VerificationResult(passed=False, reasons=["no detectors are enabled"]))
        failed = capsys.readouterr()

        assert "[PASS]" in passed.out
        assert "GATE BROKEN" in failed.err
        assert "no detectors are enabled" in failed.err


class TestJSONReporter:
    """Tests for JSONReporter."""

    def test_generate_valid_json(self, blocked_verdict: ScanVerdict):
        """Test generating valid JSON with summary counts."""
        data = json.loads(JSONReporter(target="/repo").report(blocked_verdict))

        assert data["tool"]["name"] == "LeakGate"
        assert data["target"] == "/repo"
        assert data["summary"]["total_findings"] == 2
        assert data["summary"]["by_severity"]["CRITICAL"] == 1
        assert data["summary"]["by_severity"]["MEDIUM"] == 1
        assert data["summary"]["by_detector"] == {"entropy": 1, "patterns": 1}
        assert data["verdict"]["passed"] is False
        assert data["verdict"]["suppressed"] == 2

    def test_no_timings(self, blocked_verdict: ScanVerdict):
        """Test the report carries no elapsed times."""
        assert "elapsed" not in JSONReporter(target="/repo").report(blocked_verdict)

    def test_detector_errors_included(self, degraded_verdict: ScanVerdict):
        """Test detector and file errors are part of the report."""
        data = json.loads(JSONReporter(target="/repo").report(degraded_verdict))

        gitleaks = next(d for d in data["verdict"]["detectors"] if d["detector"] == "gitleaks")
        assert gitleaks["error_kind"] == "unavailable"
        assert data["verdict"]["file_errors"] == [{"path": "gone.py", "reason": "No such file"}]

    def test_write_to_file(self, temp_dir: Path, blocked_verdict: ScanVerdict):
        """Test writing JSON to file."""
        output_file = temp_dir / "report.json"
        JSONReporter(target="/repo").report(blocked_verdict, output_file=str(output_file))

        assert output_file.exists()
        assert json.loads(output_file.read_text())["summary"]["total_findings"] == 2


class TestSARIFReporter:
    """Tests for SARIFReporter."""

    def test_generate_valid_sarif(self, blocked_verdict: ScanVerdict):
        """Test generating valid SARIF."""
        sarif = json.loads(SARIFReporter(target="/repo").report(blocked_verdict))

        assert sarif["version"] == "2.1.0"
        run = sarif["runs"][0]
        assert run["tool"]["driver"]["name"] == "LeakGate"
        assert [r["id"] for r in run["tool"]["driver"]["rules"]] == ["aws-access-key-id", "high-entropy-base64"]
        assert len(run["results"]) == 2

    def test_result_fields(self, blocked_verdict: ScanVerdict):
        """Test results carry location, level and fingerprint."""
        sarif = json.loads(SARIFReporter(target="/repo").report(blocked_verdict))
        result = sarif["runs"][0]["results"][0]

        assert result["ruleId"] == "aws-access-key-id"
        assert result["level"] == "error"
        assert result["partialFingerprints"]["leakgate/v1"] == blocked_verdict.findings[0].fingerprint
        location = result["locations"][0]["physicalLocation"]
        assert location["artifactLocation"]["uri"] == "a.py"
        assert location["region"]["startLine"] == 3
        assert AWS_KEY not in json.dumps(sarif)

    def test_detector_errors_as_notifications(self, degraded_verdict: ScanVerdict):
        """Test detector errors surface as tool notifications."""
        sarif = json.loads(SARIFReporter(target="/repo").report(degraded_verdict))
        invocation = sarif["runs"][0]["invocations"][0]

        assert invocation["executionSuccessful"] is False
        assert "gitleaks" in invocation["toolExecutionNotifications"][0]["message"]["text"]
