"""
Shared fixtures: project trees on disk and throwaway git repositories.
"""

import shutil
import subprocess
from pathlib import Path

import pytest


def write(root: Path, rel: str, text: str = "") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(text.encode("utf-8"))
    return path


def manifest(name: str, version: str = "0.1.0") -> str:
    return f'[package]\nname = "{name}"\nversion = "{version}"\n'


def git(root: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=str(root), check=True, capture_output=True)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def git_repo(project: Path) -> Path:
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    git(project, "init", "-q")
    return project
