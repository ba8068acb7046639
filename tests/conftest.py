"""Pytest configuration and fixtures."""

import os
import stat
import subprocess

import pytest

from matrixci.model import RunConfig
from matrixci.release import LocalReleasePublisher
from matrixci.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def fresh_console():
    """Every test starts with a non-debug console."""
    set_console(Console(debug=False))
    yield


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws


@pytest.fixture
def git_workspace(workspace):
    """Workspace that is a git repository with one commit."""
    def git(*args):
        subprocess.run(["git", *args], cwd=workspace, check=True, capture_output=True)

    git("init", "-q")
    (workspace / "README.md").write_text("hello\n")
    git("add", "README.md")
    git("-c", "user.name=ci", "-c", "user.email=ci@example.com", "commit", "-q", "-m", "init")
    return workspace


@pytest.fixture
def config(workspace, tmp_path):
    """RunConfig with cache and releases outside the workspace."""
    return RunConfig(
        workspace=str(workspace),
        env={"CARGO_TERM_COLOR": "always", "RUST_BACKTRACE": "1"},
        inputs={"rust-version": "stable"},
        cache_root=str(tmp_path / "cache"),
        publisher=LocalReleasePublisher(tmp_path / "releases"),
    )


@pytest.fixture
def fake_cargo(tmp_path, monkeypatch):
    """
    Put a `cargo` stub on PATH. It appends its arguments to cargo.log in the
    current directory, creates target/release/app on build and fails `fmt`
    when FAIL_FMT=1.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "cargo"
    script.write_text(
        "#!/bin/sh\n"
        'echo "$*" >> cargo.log\n'
        'if [ "$1" = "fmt" ] && [ "$FAIL_FMT" = "1" ]; then exit 1; fi\n'
        'if [ "$1" = "build" ]; then mkdir -p target/release && echo bin > target/release/app; fi\n'
        "exit 0\n"
    )
    script.chmod(script.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return script
