"""
LeakGate CLI

Command-line interface for installing, running and verifying the gate.

Commands:
    leakgate install                - Install the pre-commit hook and boilerplate
    leakgate scan [FILES...]        - Scan files (exit 1 on unreviewed secrets)
    leakgate hook [FILES...]        - Pre-commit entry point (scans staged content)
    leakgate verify                 - Prove the installed gate blocks a secret
    leakgate accept [FILES...]      - Record current findings as reviewed
    leakgate init                   - Create a default .leakgate.yaml

Exit codes: 0 ok, 1 secrets found, 2 configuration/precondition error,
3 self-verification found a broken gate.
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import click

from leakgate import __version__
from leakgate.core.config import CONFIG_FILENAME, generate_default_config
from leakgate.core.engine import ScanVerdict
from leakgate.core.errors import (
    EXIT_ERROR,
    EXIT_FINDINGS,
    EXIT_OK,
    LeakGateError,
    PreconditionError,
    VerificationFailed,
)
from leakgate.core.gate import Gate
from leakgate.core.git import GitRepo
from leakgate.install.installer import ArtifactStatus, HookInstaller
from leakgate.reporting.console import ConsoleReporter, _safe_echo
from leakgate.reporting.json_reporter import JSONReporter
from leakgate.reporting.sarif import SARIFReporter
from leakgate.verify.runner import SelfVerificationRunner


logger = logging.getLogger("leakgate")


def setup_logging(verbose: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s :: %(message)s"))
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def handle_errors(func: Callable) -> Callable:
    """Turn LeakGateError into a red diagnostic and its exit code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PreconditionError as exc:
            _safe_echo(click.style(f"  [X] {exc.label}:", fg="red", bold=True), err=True)
            for problem in exc.problems:
                _safe_echo(click.style(f"      - {problem}", fg="red"), err=True)
            sys.exit(exc.exit_code)
        except LeakGateError as exc:
            _safe_echo(click.style(f"  [X] {exc.label}: {exc}", fg="red", bold=True), err=True)
            sys.exit(exc.exit_code)

    return wrapper


@click.group()
@click.version_option(version=__version__, prog_name="LeakGate")
@click.option("--repo", "repo_path", type=click.Path(file_okay=False), default=None,
              help="Repository to operate on (default: current directory).")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help=f"Path to the configuration file (default: <repo>/{CONFIG_FILENAME}).")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, repo_path: Optional[str], config_path: Optional[str], verbose: bool) -> None:
    """
    LeakGate - pre-commit secret-leak gate

    Blocks commits that introduce secrets, with a reviewed baseline for
    accepted findings and a self-test that proves the gate works.
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["repo_path"] = Path(repo_path) if repo_path else None
    ctx.obj["config_path"] = Path(config_path) if config_path else None


def _open_gate(ctx: click.Context, fail_closed: bool = False) -> Gate:
    repo = GitRepo.discover(ctx.obj["repo_path"])
    gate = Gate.open(repo, ctx.obj["config_path"])
    if fail_closed:
        gate.config.fail_closed = True
    return gate


def _exit_for(verdict: ScanVerdict) -> None:
    if verdict.blocked_by_findings:
        sys.exit(EXIT_FINDINGS)
    if verdict.blocked_by_errors:
        sys.exit(EXIT_ERROR)
    sys.exit(EXIT_OK)


# ═══════════════════════════════════════════════════════
#  leakgate install
# ═══════════════════════════════════════════════════════
@cli.command()
@click.option("--seed-baseline", is_flag=True,
              help="Accept findings in all tracked files into a newly created baseline.")
@click.option("--stage-baseline", is_flag=True, help="Stage the baseline file with git add.")
@click.pass_context
@handle_errors
def install(ctx: click.Context, seed_baseline: bool, stage_baseline: bool) -> None:
    """Install the pre-commit hook and repository boilerplate.

    Existing files are never overwritten. Safe to run repeatedly.
    """
    start = ctx.obj["repo_path"] or Path.cwd()
    installer = HookInstaller(start, config_path=ctx.obj["config_path"])
    report = installer.install()
    ConsoleReporter(target=str(report.repo_root)).report_install(report)

    gate = _open_gate(ctx)
    baseline_rel = gate.store.path.relative_to(gate.repo.root).as_posix()

    if seed_baseline and report.status_of("baseline") is ArtifactStatus.CREATED:
        accepted, _ = gate.accept(gate.repo.tracked_files())
        _safe_echo(click.style(f"  [+] Seeded baseline with {len(accepted)} finding(s)", fg="green"))

    if stage_baseline and gate.store.path.exists():
        gate.repo.add([baseline_rel])
        _safe_echo(click.style(f"  [+] Staged {baseline_rel}", fg="green"))

    if not report.ok:
        sys.exit(EXIT_ERROR)


# ═══════════════════════════════════════════════════════
#  leakgate scan
# ═══════════════════════════════════════════════════════
@cli.command()
@click.argument("files", nargs=-1, type=click.Path())
@click.option("--staged", is_flag=True, help="Scan staged content instead of the work tree.")
@click.option("--all-files", is_flag=True, help="Scan every tracked file.")
@click.option("--format", "-f", "output_format", type=click.Choice(["console", "json", "sarif"]),
              default="console", help="Output format (default: console).")
@click.option("--output", "-o", "output_file", type=click.Path(), default=None,
              help="Write report to a file.")
@click.option("--fail-closed", is_flag=True, help="Treat detector failures as blocking.")
@click.pass_context
@handle_errors
def scan(
    ctx: click.Context,
    files: tuple,
    staged: bool,
    all_files: bool,
    output_format: str,
    output_file: Optional[str],
    fail_closed: bool,
) -> None:
    """Scan files for unreviewed secrets.

    Examples:

        leakgate scan src/settings.py

        leakgate scan --staged

        leakgate scan --all-files --format sarif --output leakgate.sarif
    """
    gate = _open_gate(ctx, fail_closed=fail_closed)
    paths = gate.relative(files)

    if staged:
        verdict = gate.scan_staged(paths or None)
    elif all_files:
        verdict = gate.scan_disk(paths or gate.repo.tracked_files())
    else:
        verdict = gate.scan_disk(paths)

    target = str(gate.repo.root)
    if output_format == "json":
        json_str = JSONReporter(target=target).report(verdict, output_file=output_file)
        if not output_file:
            _safe_echo(json_str)
    elif output_format == "sarif":
        sarif_str = SARIFReporter(target=target).report(verdict, output_file=output_file)
        if not output_file:
            _safe_echo(sarif_str)
    else:
        ConsoleReporter(target=target).report(verdict)
        if output_file:
            JSONReporter(target=target).report(verdict, output_file=output_file)

    _exit_for(verdict)


# ═══════════════════════════════════════════════════════
#  leakgate hook
# ═══════════════════════════════════════════════════════
@cli.command()
@click.argument("files", nargs=-1, type=click.Path())
@click.pass_context
@handle_errors
def hook(ctx: click.Context, files: tuple) -> None:
    """Pre-commit entry point: scan staged content and block on secrets."""
    gate = _open_gate(ctx)
    paths = gate.relative(files) if files else None
    verdict = gate.scan_staged(paths)
    ConsoleReporter(target=str(gate.repo.root), quiet=True).report(verdict)
    _exit_for(verdict)


# ═══════════════════════════════════════════════════════
#  leakgate verify
# ═══════════════════════════════════════════════════════
@cli.command()
@click.option("--no-stage", is_flag=True,
              help="Scan the fixtures from disk instead of staging them.")
@click.pass_context
@handle_errors
def verify(ctx: click.Context, no_stage: bool) -> None:
    """Prove the installed gate blocks a known secret.

    Exit 0 when the gate works, 3 when a secret would slip through.
    """
    gate = _open_gate(ctx)
    result = SelfVerificationRunner(gate, stage=not no_stage).run()
    ConsoleReporter(target=str(gate.repo.root)).report_verification(result)
    if not result.passed:
        raise VerificationFailed("; ".join(result.reasons))


# ═══════════════════════════════════════════════════════
#  leakgate accept
# ═══════════════════════════════════════════════════════
@cli.command()
@click.argument("files", nargs=-1, type=click.Path())
@click.option("--all-files", is_flag=True, help="Accept findings in every tracked file.")
@click.option("--reviewer", default=None, help="Recorded as accepted_by (default: git user.email).")
@click.pass_context
@handle_errors
def accept(ctx: click.Context, files: tuple, all_files: bool, reviewer: Optional[str]) -> None:
    """Record the current findings in FILES as reviewed.

    Accepted findings are suppressed by later scans until the matched
    text changes. Review the baseline diff before committing it.
    """
    gate = _open_gate(ctx)
    paths = gate.relative(files)
    if all_files and not paths:
        paths = gate.repo.tracked_files()
    if not paths:
        raise click.UsageError("name the files to accept, or pass --all-files")

    accepted, baseline = gate.accept(paths, accepted_by=reviewer)
    for finding in accepted:
        _safe_echo(click.style(f"  [+] {finding.path}:{finding.line} {finding.rule_id} {finding.redacted}",
                               fg="green"))
    _safe_echo(click.style(
        f"  Accepted {len(accepted)} new finding(s); baseline now holds {len(baseline)} "
        f"entr{'y' if len(baseline) == 1 else 'ies'} ({gate.store.path}).",
        fg="white",
    ))


# ═══════════════════════════════════════════════════════
#  leakgate init
# ═══════════════════════════════════════════════════════
@cli.command()
@click.option("--path", "-p", "target_path", type=click.Path(), default=".",
              help="Directory to create the config file in.")
def init(target_path: str) -> None:
    """Create a default .leakgate.yaml."""
    target = Path(target_path).resolve()
    target.mkdir(parents=True, exist_ok=True)

    config_file = target / CONFIG_FILENAME

    if config_file.exists():
        _safe_echo(click.style(f"  [!] {config_file} already exists, skipping.", fg="yellow"))
    else:
        config_file.write_text(generate_default_config(), encoding="utf-8")
        _safe_echo(click.style(f"  [+] Created {config_file}", fg="green"))

    _safe_echo("")
    _safe_echo("  Edit this file to choose detectors and exclusions.")
    _safe_echo("  Run 'leakgate install' to set up the pre-commit hook.")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
