"""
Pytest Configuration and Fixtures

Shared fixtures for LeakGate tests.
"""

import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Generator, List, Optional

import pytest

from leakgate.core.config import DetectorConfig, LeakGateConfig
from leakgate.core.detector import BaseDetector, ScanRequest
from leakgate.core.errors import DetectorError, DetectorErrorKind
from leakgate.core.finding import Finding, Severity, fingerprint, redact
from leakgate.core.git import GitRepo


# Assembled at runtime so the test sources never hold a matching literal
AWS_KEY = "AKIA" + "IOSFODNN7EXAMPLE"


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True)
    return result.stdout


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the caller's environment out of configuration loading."""
    monkeypatch.delenv("LEAKGATE_CONFIG", raising=False)
    monkeypatch.delenv("LEAKGATE_FAIL_CLOSED", raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def git_repo(temp_dir: Path, monkeypatch) -> Path:
    """An initialized, empty git repository; the process cwd is its root."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    git(temp_dir, "init", "-q")
    git(temp_dir, "config", "user.email", "reviewer@example.com")
    git(temp_dir, "config", "user.name", "Reviewer")
    git(temp_dir, "config", "commit.gpgsign", "false")
    monkeypatch.chdir(temp_dir)
    return temp_dir


@pytest.fixture
def repo(git_repo: Path) -> GitRepo:
    return GitRepo(git_repo)


@pytest.fixture
def config() -> LeakGateConfig:
    """Create a default configuration."""
    return LeakGateConfig.default()


@pytest.fixture
def builtin_config() -> LeakGateConfig:
    """Only the built-in detectors, with no file exclusions."""
    return LeakGateConfig(
        detectors=[DetectorConfig(id="patterns"), DetectorConfig(id="entropy")],
        exclude=[],
    )


@pytest.fixture
def sample_finding() -> Finding:
    """Create a sample finding for testing."""
    return make_finding()


def make_finding(path: str = "app/settings.py", line: int = 3, secret: str = AWS_KEY,
                 rule_id: str = "aws-access-key-id", detector: str = "patterns",
                 severity: Severity = Severity.CRITICAL) -> Finding:
    return Finding(
        path=path,
        line=line,
        detector=detector,
        rule_id=rule_id,
        title="AWS Access Key ID",
        redacted=redact(secret),
        fingerprint=fingerprint(secret),
        severity=severity,
    )


class FixedDetector(BaseDetector):
    """Reports the same findings for every request."""

    name = "fixed"

    def __init__(self, detector_id: str = "fixed", findings: Optional[List[Finding]] = None,
                 delay: float = 0.0) -> None:
        super().__init__(detector_id)
        self.findings = findings or []
        self.delay = delay
        self.calls = 0

    def detect(self, request: ScanRequest, timeout: Optional[float] = None) -> List[Finding]:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return list(self.findings)


class BrokenDetector(BaseDetector):
    """Always fails with the given error kind."""

    name = "broken"

    def __init__(self, detector_id: str = "broken",
                 kind: DetectorErrorKind = DetectorErrorKind.FAILED) -> None:
        super().__init__(detector_id)
        self.kind = kind

    def detect(self, request: ScanRequest, timeout: Optional[float] = None) -> List[Finding]:
        raise DetectorError(self.kind, self.id, "backend exited with status 2")


class CrashingDetector(BaseDetector):
    name = "crashing"

    def detect(self, request: ScanRequest, timeout: Optional[float] = None) -> List[Finding]:
        raise RuntimeError("boom")


@pytest.fixture
def secrets_test_file(temp_dir: Path) -> Path:
    """Create a test file with secrets."""
    test_file = temp_dir / "secrets.py"
    test_file.write_text(
        "# Test file with various secrets\n"
        "\n"
        f'AWS_ACCESS_KEY = "{AWS_KEY}"\n'
        'DATABASE_URL = "postgresql://user:' + 'password123@localhost/db"\n'
        "\n"
        "# This should not be flagged (example)\n"
        '# API_KEY = "your-api-key-here"\n'
    )
    return test_file
