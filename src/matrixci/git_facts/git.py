# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.PIPE,
    )
    return out.strip()


def is_work_tree(path: str | Path) -> bool:
    """Return True if `path` is inside a git work tree."""
    try:
        return _git(["rev-parse", "--is-inside-work-tree"], cwd=path) == "true"
    except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
        return False


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """
    Return the full SHA hash of the current HEAD commit.

    Used for the `github.sha` context and checkout logging.
    """
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_ref(cwd: Optional[str | Path] = None) -> str:
    """Return the current branch name, or the HEAD sha when detached."""
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if ref == "HEAD":
        return head_sha(cwd)
    return ref


def get_remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    """Return the URL configured for a remote."""
    return _git(["remote", "get-url", remote], cwd=cwd)


def clone_or_update(repo_url: str, dest: str | Path, ref: Optional[str] = None) -> Path:
    """
    Make `dest` a checkout of `repo_url` at `ref`.

    - dest already a clone: fetch origin, then check out ref
    - otherwise:            clone into dest, then check out ref

    Args:
        repo_url: Repository URL or local path
        dest: Target directory
        ref: Branch, tag or commit (defaults to the remote default branch)

    Returns:
        Path to the checkout

    Raises:
        RuntimeError: If any git operation fails
    """
    dest = Path(dest)
    try:
        if (dest / ".git").exists():
            _git(["fetch", "origin"], cwd=dest)
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
            _git(["clone", repo_url, str(dest)])
        if ref:
            _git(["checkout", ref], cwd=dest)
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"git {' '.join(e.cmd[1:3])} failed: {(e.stderr or '').strip()}") from e
    except FileNotFoundError:
        raise RuntimeError("git command not found. Please install Git.") from None
    return dest


def short_head(cwd: Optional[str | Path] = None) -> str:
    """HEAD sha shortened for display; "(no commits)" on an empty repository."""
    try:
        return head_sha(cwd)[:12]
    except subprocess.CalledProcessError:
        return "(no commits)"
