"""
LeakGate Git Helpers

Thin wrappers over the git CLI: repository discovery, the staged file
list, staged blob contents, and the index operations the verifier needs.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from leakgate.core.errors import GitError, PreconditionError


logger = logging.getLogger(__name__)

GIT_TIMEOUT = 60


def git_available() -> bool:
    return shutil.which("git") is not None


class GitRepo:
    """A git work tree rooted at ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def discover(cls, start: Optional[Path] = None) -> "GitRepo":
        """Find the work tree containing ``start`` (default: cwd)."""
        if not git_available():
            raise PreconditionError(["git is not installed or not on PATH"])
        start = (start or Path.cwd()).resolve()
        result = _run_git(["rev-parse", "--show-toplevel"], cwd=start)
        if result.returncode != 0:
            raise PreconditionError([f"{start} is not inside a git repository (run 'git init' first)"])
        return cls(Path(result.stdout.strip()))

    def run(self, *args: str) -> str:
        """Run a git command in the work tree and return stdout."""
        result = _run_git(list(args), cwd=self.root)
        if result.returncode != 0:
            raise GitError(f"git {' '.join(args)} failed: {result.stderr.strip()}")
        return result.stdout

    def staged_files(self) -> list[str]:
        """Added, copied, modified or type-changed paths in the index, relative to the root.

        Renames are listed under their new path.
        """
        out = self.run("diff", "--cached", "--name-only", "--no-renames", "--diff-filter=ACMT", "-z")
        return [p for p in out.split("\0") if p]

    def tracked_files(self) -> list[str]:
        out = self.run("ls-files", "-z")
        return [p for p in out.split("\0") if p]

    def read_staged(self, path: str) -> bytes:
        """Return the staged (index) content of ``path``."""
        try:
            result = subprocess.run(
                ["git", "cat-file", "blob", f":{path}"],
                cwd=self.root,
                capture_output=True,
                timeout=GIT_TIMEOUT,
            )
        except (subprocess.TimeoutExpired, OSError) as exc:
            raise OSError(f"cannot read staged {path}: {exc}") from exc
        if result.returncode != 0:
            message = result.stderr.decode("utf-8", errors="replace").strip()
            raise OSError(f"cannot read staged {path}: {message}")
        return result.stdout

    def hooks_dir(self) -> Path:
        """The hooks directory git actually uses (honours core.hooksPath)."""
        path = Path(self.run("rev-parse", "--git-path", "hooks").strip())
        return path if path.is_absolute() else self.root / path

    def add(self, paths: list[str], force: bool = False) -> None:
        args = ["add"]
        if force:
            args.append("--force")
        self.run(*args, "--", *paths)

    def unstage(self, path: str) -> None:
        """Drop ``path`` from the index, leaving the work tree alone."""
        self.run("rm", "--cached", "-r", "-q", "--ignore-unmatch", "--", path)

    def user_email(self) -> Optional[str]:
        result = _run_git(["config", "user.email"], cwd=self.root)
        value = result.stdout.strip()
        return value or None


def _run_git(args: list[str], cwd: Path) -> subprocess.CompletedProcess:
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        return subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except subprocess.TimeoutExpired as exc:
        raise GitError(f"git {' '.join(args)} timed out") from exc
    except OSError as exc:
        raise GitError(f"cannot run git: {exc}") from exc
