"""
LeakGate Hook Installer

Materializes the gate in a repository from a declared list of managed
artifacts: configuration, pre-commit hook, ignore rules, baseline and
editor hints.

Policy: create if absent, never overwrite. An existing artifact is
reported as skipped and left byte-for-byte untouched. Preconditions are
all checked before the first write.
"""

from __future__ import annotations

import json
import logging
import shlex
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from leakgate.baseline.store import Baseline
from leakgate.core.config import LeakGateConfig, generate_default_config, CONFIG_FILENAME
from leakgate.core.errors import LeakGateError, PreconditionError
from leakgate.core.fs import atomic_write_text
from leakgate.core.git import GitRepo, git_available
from leakgate.detectors.registry import build_registry


logger = logging.getLogger(__name__)

HOOK_MARKER = "-m leakgate hook"
SCRATCH_PREFIX = ".leakgate-verify-"


class ArtifactStatus(Enum):
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ArtifactResult:
    name: str
    path: Path
    status: ArtifactStatus
    reason: Optional[str] = None


@dataclass
class InstallReport:
    repo_root: Path
    results: list[ArtifactResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.status is not ArtifactStatus.FAILED for r in self.results)

    def status_of(self, name: str) -> Optional[ArtifactStatus]:
        for result in self.results:
            if result.name == name:
                return result.status
        return None


@dataclass(frozen=True)
class ManagedArtifact:
    name: str
    description: str
    locate: Callable[[GitRepo, LeakGateConfig], Path]
    render: Callable[[GitRepo, LeakGateConfig], str]
    mode: int = 0o644
    # Returns a note for an existing file that looks foreign, else None
    inspect: Optional[Callable[[Path], Optional[str]]] = None


# ── Artifact contents ──

def render_hook(repo: GitRepo, config: LeakGateConfig) -> str:
    python = shlex.quote(sys.executable or "python3")
    return f"""\
#!/bin/sh
# LeakGate pre-commit hook (installed by `leakgate install`).
# Blocks the commit when staged content contains an unreviewed secret.
exec {python} {HOOK_MARKER} "$@"
"""


def inspect_hook(path: Path) -> Optional[str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    if HOOK_MARKER not in text:
        return "existing hook does not run leakgate; add `python -m leakgate hook` to it"
    return None


GITIGNORE_TEMPLATE = f"""\
# ==============================================================================
# Git Ignore Configuration
# ==============================================================================

# Windows/macOS/Linux
.DS_Store
Thumbs.db
ehthumbs.db
Desktop.ini
.directory
.Trash-*

# IDE and Editor settings
.idea/
*.swp
*.swo
.project
.classpath
.factorypath

# Log/Temporary files
logs/
*.log
*.tmp
*.bak

# Sensitive information
.env
.env.*
secrets.json
credentials.json
*.pem
*.key

# LeakGate self-verification scratch areas
{SCRATCH_PREFIX}*/
"""


def render_gitignore(repo: GitRepo, config: LeakGateConfig) -> str:
    return GITIGNORE_TEMPLATE


def render_baseline(repo: GitRepo, config: LeakGateConfig) -> str:
    return Baseline().to_json()


def render_editor(repo: GitRepo, config: LeakGateConfig) -> str:
    settings = {
        "files.exclude": {
            "**/.git": True,
            "**/.DS_Store": True,
            "**/__pycache__": True,
            "**/*.pyc": True,
            f"**/{SCRATCH_PREFIX}*": True,
        },
        "files.watcherExclude": {
            f"**/{SCRATCH_PREFIX}*/**": True,
        },
    }
    return json.dumps(settings, indent=4) + "\n"


def render_config(repo: GitRepo, config: LeakGateConfig) -> str:
    return generate_default_config()


MANAGED_ARTIFACTS: list[ManagedArtifact] = [
    ManagedArtifact(
        name="config",
        description="LeakGate configuration",
        locate=lambda repo, config: repo.root / CONFIG_FILENAME,
        render=render_config,
    ),
    ManagedArtifact(
        name="hook",
        description="git pre-commit hook",
        locate=lambda repo, config: repo.hooks_dir() / "pre-commit",
        render=render_hook,
        mode=0o755,
        inspect=inspect_hook,
    ),
    ManagedArtifact(
        name="gitignore",
        description="ignore rules",
        locate=lambda repo, config: repo.root / ".gitignore",
        render=render_gitignore,
    ),
    ManagedArtifact(
        name="baseline",
        description="secrets baseline",
        locate=lambda repo, config: config.resolve_baseline(repo.root),
        render=render_baseline,
    ),
    ManagedArtifact(
        name="editor",
        description="editor hints",
        locate=lambda repo, config: repo.root / ".vscode" / "settings.json",
        render=render_editor,
    ),
]


class HookInstaller:
    """Idempotently installs the gate into the repository containing ``start``."""

    def __init__(self, start: Path, config: Optional[LeakGateConfig] = None,
                 config_path: Optional[Path] = None,
                 artifacts: Optional[list[ManagedArtifact]] = None) -> None:
        self.start = start
        self.config = config
        self.config_path = config_path
        self.artifacts = artifacts if artifacts is not None else MANAGED_ARTIFACTS

    def check_preconditions(self) -> tuple[GitRepo, LeakGateConfig]:
        """
        Verify everything needed before the first write.

        Raises:
            PreconditionError: listing every failed precondition.
            ConfigError: when an existing configuration is malformed.
        """
        problems: list[str] = []
        repo: Optional[GitRepo] = None
        if not git_available():
            problems.append("git is not installed or not on PATH")
        else:
            try:
                repo = GitRepo.discover(self.start)
            except PreconditionError as exc:
                problems.extend(exc.problems)

        root = repo.root if repo else self.start
        config = self.config or LeakGateConfig.load(self.config_path, root=root)
        registry = build_registry(config)
        problems.extend(registry.unavailable())

        if problems or repo is None:
            raise PreconditionError(problems)
        return repo, config

    def install(self) -> InstallReport:
        repo, config = self.check_preconditions()
        report = InstallReport(repo_root=repo.root)
        for artifact in self.artifacts:
            report.results.append(self._materialize(artifact, repo, config))
        return report

    def _materialize(self, artifact: ManagedArtifact, repo: GitRepo, config: LeakGateConfig) -> ArtifactResult:
        try:
            path = artifact.locate(repo, config)
        except LeakGateError as exc:
            return ArtifactResult(artifact.name, Path("?"), ArtifactStatus.FAILED, str(exc))

        if path.exists() or path.is_symlink():
            note = artifact.inspect(path) if artifact.inspect else None
            logger.debug("%s exists at %s, leaving it untouched", artifact.name, path)
            return ArtifactResult(artifact.name, path, ArtifactStatus.SKIPPED, note)

        try:
            atomic_write_text(path, artifact.render(repo, config), mode=artifact.mode)
        except OSError as exc:
            logger.warning("could not create %s at %s: %s", artifact.name, path, exc)
            return ArtifactResult(artifact.name, path, ArtifactStatus.FAILED, exc.strerror or str(exc))

        logger.info("created %s at %s", artifact.name, path)
        return ArtifactResult(artifact.name, path, ArtifactStatus.CREATED)
