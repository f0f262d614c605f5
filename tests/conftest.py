import io
import os
import stat
import sys
from pathlib import Path
import pytest

# Ensure we can import modules from src/ before test modules are collected
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture()
def sandbox(tmp_path, monkeypatch):
    # Work in an isolated temp directory
    monkeypatch.chdir(tmp_path)
    # Prune environment to a minimal safe set
    safe_env = {
        "PATH": os.environ.get("PATH", "/usr/bin:/bin"),
        "HOME": str(tmp_path),
        "LANG": os.environ.get("LANG", "C"),
        "LC_ALL": os.environ.get("LC_ALL", "C"),
        "TERM": os.environ.get("TERM", "dumb"),
    }
    monkeypatch.setenv("PIPESH_TEST_SANDBOX", "1")
    return tmp_path, safe_env


@pytest.fixture()
def session(sandbox):
    """A session with in-memory standard streams rooted at the sandbox."""
    from ops import ShellSession
    tmp_path, safe_env = sandbox
    sess = ShellSession(
        inherit_env=False,
        cwd=str(tmp_path),
        stdin=io.BytesIO(),
        stdout=io.BytesIO(),
        stderr=io.BytesIO(),
    )
    sess.env.update(safe_env)
    return sess


@pytest.fixture()
def make_executable():
    """Create a small executable script: make_executable(directory, name, body)."""
    def factory(directory: Path, name: str, body: str = "exit 0\n") -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        script = directory / name
        script.write_text("#!/bin/sh\n" + body)
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script
    return factory
