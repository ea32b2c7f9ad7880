"""
LeakGate Console Reporter

Human-readable colored output for scans, installs and self-verification.
"Secret found" and "gate broken" always print different banners.
"""

from __future__ import annotations

import sys
from collections import Counter

import click

from leakgate import __version__
from leakgate.core.engine import RunStatus, ScanVerdict
from leakgate.core.finding import Severity
from leakgate.install.installer import ArtifactStatus, InstallReport
from leakgate.verify.runner import VerificationResult


def _safe_echo(text: str = "", **kwargs) -> None:
    """Echo text, handling Unicode issues on Windows consoles."""
    try:
        click.echo(text, **kwargs)
    except UnicodeEncodeError:
        safe = text.encode(sys.stdout.encoding or "utf-8", errors="replace").decode(
            sys.stdout.encoding or "utf-8", errors="replace"
        )
        click.echo(safe, **kwargs)


# Severity colors
SEVERITY_COLORS = {
    "CRITICAL": "bright_red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "cyan",
    "INFO": "white",
}

STATUS_STYLES = {
    ArtifactStatus.CREATED: ("[+]", "green"),
    ArtifactStatus.SKIPPED: ("[!]", "yellow"),
    ArtifactStatus.FAILED: ("[X]", "red"),
}


class ConsoleReporter:
    """Prints scan verdicts and install/verify reports to the console."""

    def __init__(self, target: str, quiet: bool = False) -> None:
        self.target = target
        self.quiet = quiet

    # ── Scan ──

    def report(self, verdict: ScanVerdict) -> None:
        """
        Print the full scan report.

        Args:
            verdict: Result of the scan, findings already suppressed.
        """
        if not self.quiet:
            self._print_header("LeakGate Secret Scan")
            self._print_detector_results(verdict)
            self._print_severity_summary(verdict)

        if verdict.findings:
            self._print_detailed_findings(verdict)

        self._print_errors(verdict)
        self._print_footer(verdict)

    def _print_header(self, title: str) -> None:
        _safe_echo("")
        _safe_echo(click.style("=" * 55, fg="bright_blue"))
        _safe_echo(click.style(f"  {title}", fg="bright_white", bold=True))
        _safe_echo(click.style(f"  Version: {__version__}", fg="white"))
        _safe_echo(click.style(f"  Target: {self.target}", fg="white"))
        _safe_echo(click.style("=" * 55, fg="bright_blue"))

    def _print_detector_results(self, verdict: ScanVerdict) -> None:
        _safe_echo("")
        _safe_echo(click.style(f"  Files scanned: {verdict.files_scanned}", fg="white"))
        if not verdict.detector_runs:
            return
        _safe_echo(click.style("  Detector Results:", fg="bright_white", bold=True))
        for run in verdict.detector_runs:
            if run.status is RunStatus.OK:
                _safe_echo(
                    click.style(f"    [+] {run.detector}: ", fg="green")
                    + click.style(f"{run.findings} finding(s)", fg="white")
                    + click.style(f" in {run.elapsed:.2f}s", fg="bright_black")
                )
            else:
                _safe_echo(
                    click.style(f"    [X] {run.detector}: ", fg="red")
                    + click.style(f"{run.status.value} - {run.error}", fg="white")
                )

    def _print_severity_summary(self, verdict: ScanVerdict) -> None:
        _safe_echo("")
        _safe_echo(click.style("  Findings Summary:", fg="bright_white", bold=True))
        counter = Counter(f.severity.value for f in verdict.findings)
        for sev in Severity:
            count = counter.get(sev.value, 0)
            color = SEVERITY_COLORS.get(sev.value, "white")
            _safe_echo(
                click.style(f"     {sev.value:10s}: ", fg=color) + click.style(str(count), fg="white")
            )
        if verdict.suppressed:
            _safe_echo(click.style(f"     {verdict.suppressed} finding(s) suppressed by the baseline",
                                   fg="bright_black"))

    def _print_detailed_findings(self, verdict: ScanVerdict) -> None:
        _safe_echo("")
        _safe_echo(click.style("  Detailed Findings:", fg="bright_white", bold=True))
        _safe_echo(click.style("-" * 55, fg="bright_black"))

        for idx, finding in enumerate(verdict.findings, start=1):
            sev = finding.severity.value
            color = SEVERITY_COLORS.get(sev, "white")

            _safe_echo("")
            _safe_echo(
                click.style(f"  {idx}. ", fg="white")
                + click.style(f" {sev} ", fg=color, bold=True)
                + click.style(f" {finding.title}", fg="bright_white")
            )
            _safe_echo(click.style(f"      Rule: {finding.rule_id} ({finding.detector})", fg="bright_black"))
            _safe_echo(click.style(f"      Location: {finding.path}:{finding.line}", fg="bright_black"))
            _safe_echo(click.style(f"      Match: {finding.redacted}", fg="white"))

    def _print_errors(self, verdict: ScanVerdict) -> None:
        problems = [f"detector {run.detector}: {run.status.value} - {run.error}"
                    for run in verdict.detector_errors]
        problems += [f"file {err.path}: {err.reason}" for err in verdict.file_errors]
        if not problems:
            return
        mode = "blocking (fail-closed)" if verdict.fail_closed else "not blocking"
        _safe_echo("")
        _safe_echo(click.style(f"  Gate degraded, {mode}:", fg="yellow", bold=True), err=True)
        for problem in problems:
            _safe_echo(click.style(f"    [!] {problem}", fg="yellow"), err=True)

    def _print_footer(self, verdict: ScanVerdict) -> None:
        _safe_echo("")
        _safe_echo(click.style("=" * 55, fg="bright_blue"))

        if verdict.blocked_by_findings:
            _safe_echo(
                click.style(
                    "  [X] COMMIT BLOCKED - Unreviewed secrets found",
                    fg="bright_red",
                    bold=True,
                )
            )
            _safe_echo(click.style(
                "      Remove them, or run 'leakgate accept <files>' after review.", fg="white"))
        elif verdict.blocked_by_errors:
            _safe_echo(
                click.style(
                    "  [X] GATE ERROR - Detectors failed and fail-closed is set",
                    fg="bright_red",
                    bold=True,
                )
            )
        else:
            _safe_echo(
                click.style("  [OK] PASSED - No unreviewed secrets found", fg="green", bold=True)
            )

        _safe_echo(click.style("=" * 55, fg="bright_blue"))
        _safe_echo("")

    # ── Install ──

    def report_install(self, report: InstallReport) -> None:
        self._print_header("LeakGate Install")
        _safe_echo("")
        for result in report.results:
            icon, color = STATUS_STYLES[result.status]
            _safe_echo(click.style(f"  {icon} {result.name}: {result.status.value} {result.path}", fg=color))
            if result.reason:
                _safe_echo(click.style(f"      {result.reason}", fg="bright_black"))
        _safe_echo("")
        if report.ok:
            _safe_echo(click.style("  Run 'leakgate verify' to prove the gate blocks secrets.", fg="white"))
        else:
            _safe_echo(click.style("  [X] Some artifacts could not be created.", fg="red", bold=True), err=True)
        _safe_echo("")

    # ── Verify ──

    def report_verification(self, result: VerificationResult) -> None:
        self._print_header("LeakGate Self-Verification")
        if result.verdict is not None:
            self._print_detector_results(result.verdict)
        for warning in result.warnings:
            _safe_echo(click.style(f"  [!] {warning}", fg="yellow"))

        _safe_echo("")
        _safe_echo(click.style("=" * 55, fg="bright_blue"))
        if result.passed:
            _safe_echo(click.style(
                "  [PASS] The gate BLOCKED the test secret and allowed the clean file.",
                fg="green", bold=True))
        else:
            _safe_echo(click.style(
                "  [FAIL] GATE BROKEN - a secret would have slipped through!",
                fg="bright_red", bold=True), err=True)
            for reason in result.reasons:
                _safe_echo(click.style(f"         - {reason}", fg="red"), err=True)
            _safe_echo(click.style(
                "         Fix the configuration before relying on this gate.", fg="red"), err=True)
        _safe_echo(click.style("=" * 55, fg="bright_blue"))
        _safe_echo("")
