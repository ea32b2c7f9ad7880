"""
LeakGate External Detectors

Adapters over third-party secret scanners run as subprocesses:
- gitleaks (https://github.com/gitleaks/gitleaks)
- detect-secrets (https://github.com/Yelp/detect-secrets)

The request is written into a private temporary directory so backends
scan exactly the staged content, never the work tree.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import posixpath
import shutil
import subprocess
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any, Iterator, List, Optional

from leakgate.core.detector import BaseDetector, ScanFile, ScanRequest
from leakgate.core.errors import DetectorError, DetectorErrorKind
from leakgate.core.finding import Finding, Severity, fingerprint, redact


logger = logging.getLogger(__name__)

DEFAULT_EXTERNAL_TIMEOUT = 300


class ExternalDetector(BaseDetector):
    """Common plumbing for detectors backed by an executable."""

    binary: str = ""

    def executable(self) -> Optional[str]:
        return shutil.which(self.options.get("binary", self.binary))

    def available(self) -> Optional[str]:
        if self.executable() is None:
            return f"detector '{self.id}' needs '{self.binary}' on PATH"
        return None

    def run_backend(self, args: list[str], cwd: Path, timeout: Optional[float]) -> subprocess.CompletedProcess:
        exe = self.executable()
        if exe is None:
            raise DetectorError(DetectorErrorKind.UNAVAILABLE, self.id, f"'{self.binary}' not found on PATH")

        limit = timeout or self.timeout or DEFAULT_EXTERNAL_TIMEOUT
        logger.debug("%s: running %s %s", self.id, exe, " ".join(args))
        try:
            result = subprocess.run(
                [exe, *args],
                cwd=cwd,
                env=_env_without_git(),
                capture_output=True,
                text=True,
                timeout=limit,
            )
        except subprocess.TimeoutExpired as exc:
            raise DetectorError(DetectorErrorKind.TIMEOUT, self.id, f"no result after {limit:g}s") from exc
        except OSError as exc:
            raise DetectorError(DetectorErrorKind.UNAVAILABLE, self.id, str(exc)) from exc

        if result.returncode != 0:
            stderr = result.stderr.strip().splitlines()
            detail = stderr[-1] if stderr else f"exit code {result.returncode}"
            raise DetectorError(DetectorErrorKind.FAILED, self.id, detail)
        return result

    @contextlib.contextmanager
    def materialize(self, request: ScanRequest) -> Iterator[Path]:
        """Write the request's readable files under a temporary directory."""
        with tempfile.TemporaryDirectory(prefix=f"leakgate-{self.name}-") as tmp:
            root = Path(tmp)
            for scan_file in request.readable:
                rel = PurePosixPath(scan_file.path)
                if rel.is_absolute() or ".." in rel.parts:
                    logger.warning("%s: skipping unsafe path %s", self.id, scan_file.path)
                    continue
                target = root.joinpath(*rel.parts)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(scan_file.content)
            yield root

    @staticmethod
    def normalize_path(raw: str, root: Path) -> str:
        """Map a backend-reported path back to the request's relative path."""
        path = Path(raw)
        if path.is_absolute():
            with contextlib.suppress(ValueError):
                path = path.resolve().relative_to(root.resolve())
        return posixpath.normpath(path.as_posix()).lstrip("/")

    @staticmethod
    def locate(scan_file: Optional[ScanFile], line_no: int, secret: Optional[str]) -> tuple[Optional[int], Optional[int]]:
        """Byte offsets of ``secret`` on ``line_no``, when it can be found."""
        if scan_file is None or not secret:
            return None, None
        for number, line_offset, line in scan_file.lines():
            if number == line_no:
                col = line.find(secret)
                if col < 0:
                    return None, None
                start = line_offset + len(line[:col].encode("utf-8"))
                return start, start + len(secret.encode("utf-8"))
        return None, None


class GitleaksDetector(ExternalDetector):
    name = "gitleaks"
    binary = "gitleaks"

    def detect(self, request: ScanRequest, timeout: Optional[float] = None) -> List[Finding]:
        if not request.readable:
            return []
        by_path = {f.path: f for f in request.readable}
        with self.materialize(request) as root:
            report_path = root.parent / f"{root.name}.report.json"
            try:
                self.run_backend(
                    [
                        "detect", "--no-git", "--no-banner",
                        "--source", str(root),
                        "--report-format", "json",
                        "--report-path", str(report_path),
                        "--exit-code", "0",
                    ],
                    cwd=root,
                    timeout=timeout,
                )
                try:
                    raw = report_path.read_text(encoding="utf-8")
                except OSError as exc:
                    raise DetectorError(DetectorErrorKind.MALFORMED_OUTPUT, self.id,
                                        f"no report written: {exc}") from exc
            finally:
                with contextlib.suppress(FileNotFoundError):
                    report_path.unlink()
            return self.parse_report(raw, root, by_path)

    def parse_report(self, raw: str, root: Path, by_path: dict[str, ScanFile]) -> List[Finding]:
        try:
            data = json.loads(raw) if raw.strip() else []
        except json.JSONDecodeError as exc:
            raise DetectorError(DetectorErrorKind.MALFORMED_OUTPUT, self.id, f"invalid JSON report: {exc}") from exc
        if not isinstance(data, list):
            raise DetectorError(DetectorErrorKind.MALFORMED_OUTPUT, self.id, "report is not a list")

        findings: List[Finding] = []
        for item in data:
            try:
                path = self.normalize_path(item["File"], root)
                line_no = int(item["StartLine"])
                rule_id = str(item["RuleID"])
                secret = str(item.get("Secret") or item.get("Match") or "")
            except (KeyError, TypeError, ValueError) as exc:
                raise DetectorError(DetectorErrorKind.MALFORMED_OUTPUT, self.id,
                                    f"unexpected report entry: {exc}") from exc
            start, end = self.locate(by_path.get(path), line_no, secret)
            findings.append(
                Finding(
                    path=path,
                    line=line_no,
                    detector=self.id,
                    rule_id=rule_id,
                    title=str(item.get("Description") or rule_id),
                    redacted=redact(secret),
                    fingerprint=fingerprint(secret),
                    severity=Severity.HIGH,
                    start=start,
                    end=end,
                )
            )
        return findings


class DetectSecretsDetector(ExternalDetector):
    """
    detect-secrets only reports a hash of each secret, which is used as the
    fingerprint directly; the raw value never leaves the backend.
    """

    name = "detect-secrets"
    binary = "detect-secrets"

    def detect(self, request: ScanRequest, timeout: Optional[float] = None) -> List[Finding]:
        if not request.readable:
            return []
        with self.materialize(request) as root:
            result = self.run_backend(["scan", "--all-files", "."], cwd=root, timeout=timeout)
            return self.parse_output(result.stdout, root)

    def parse_output(self, raw: str, root: Path) -> List[Finding]:
        try:
            data: Any = json.loads(raw)
            results = data["results"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise DetectorError(DetectorErrorKind.MALFORMED_OUTPUT, self.id, f"unreadable scan output: {exc}") from exc
        if not isinstance(results, dict):
            raise DetectorError(DetectorErrorKind.MALFORMED_OUTPUT, self.id, "'results' is not a mapping")

        findings: List[Finding] = []
        for filename, entries in results.items():
            path = self.normalize_path(filename, root)
            for entry in entries or []:
                try:
                    secret_type = str(entry["type"])
                    hashed = str(entry["hashed_secret"])
                    line_no = int(entry["line_number"])
                except (KeyError, TypeError, ValueError) as exc:
                    raise DetectorError(DetectorErrorKind.MALFORMED_OUTPUT, self.id,
                                        f"unexpected result entry: {exc}") from exc
                findings.append(
                    Finding(
                        path=path,
                        line=line_no,
                        detector=self.id,
                        rule_id=secret_type,
                        title=secret_type,
                        redacted=f"<hashed:{hashed[:8]}>",
                        fingerprint=hashed,
                        severity=Severity.HIGH,
                    )
                )
        return findings


def _env_without_git() -> dict[str, str]:
    # Hooks export GIT_DIR and friends; backends must not see the real repository
    return {k: v for k, v in os.environ.items() if not k.startswith("GIT_")}
