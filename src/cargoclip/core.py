"""
Core logic for cargoclip: file enumeration, bundle composition and delivery.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

import pathspec  # type: ignore
import pyperclip  # type: ignore

from .console import report
from .crates import MANIFEST_NAME, CrateMap, crate_for_path
from .errors import (
    ConfigFileError,
    FileReadError,
    InvalidRootError,
    NotARepositoryError,
)

# Defaults & helpers
DEFAULT_EXTENSIONS: List[str] = ["rs", "toml"]

# Build output, VCS internals and dependency caches are never bundled
DEFAULT_PATTERNS: List[str] = [
    "target/",
    ".git/",
    ".hg/",
    ".svn/",
    "node_modules/",
    "vendor/",
    "__pycache__/",
    ".venv/",
]
DEFAULT_SPEC = pathspec.PathSpec.from_lines("gitwildmatch", DEFAULT_PATTERNS)

Lister = Callable[[Path], Iterable[str]]


def normalize_extensions(exts: Optional[Iterable[str]]) -> Set[str]:
    """Return the allow-list for *exts*, falling back to the defaults."""
    cleaned = {e.lstrip(".") for e in exts or () if e.lstrip(".")}
    return cleaned or set(DEFAULT_EXTENSIONS)


def resolve_root(root: Path) -> Path:
    try:
        resolved = root.resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise InvalidRootError(f"Could not resolve root path '{root}': {e}")
    if not resolved.is_dir():
        raise InvalidRootError(f"Root path '{root}' is not a directory")
    return resolved


# Ignore-file utilities
def load_gitignore(root: Path) -> "pathspec.PathSpec":
    gitignore_path = root / ".gitignore"
    if not gitignore_path.exists():
        return pathspec.PathSpec.from_lines("gitwildmatch", [])
    with gitignore_path.open("r", encoding="utf-8") as fh:
        return pathspec.PathSpec.from_lines("gitwildmatch", fh)


def load_extra_patterns(config_path: Path) -> "pathspec.PathSpec":
    if not config_path.exists():
        raise ConfigFileError(f"Config file '{config_path}' does not exist")
    if not config_path.is_file():
        raise ConfigFileError(f"'{config_path}' is not a file")
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            lines = [
                ln.strip()
                for ln in fh
                if ln.strip() and not ln.lstrip().startswith("#")
            ]
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigFileError(f"Could not read config file '{config_path}': {e}")
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


# git helpers
def _git(root: Path, *args: str) -> str:
    try:
        out = subprocess.run(
            ["git", *args],
            cwd=str(root),
            text=True,
            capture_output=True,
            check=True,
        )
    except FileNotFoundError:
        raise NotARepositoryError("git executable not found on PATH")
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
        raise NotARepositoryError(f"git {args[0]} failed in '{root}': {detail}")
    return out.stdout


def ensure_repository(root: Path) -> None:
    """Raise :class:`NotARepositoryError` unless *root* is in a git work tree."""
    try:
        inside = _git(root, "rev-parse", "--is-inside-work-tree").strip()
    except NotARepositoryError as e:
        raise NotARepositoryError(f"'{root}' is not a git repository ({e})")
    if inside != "true":
        raise NotARepositoryError(f"'{root}' is not inside a git work tree")


def list_repository_files(root: Path) -> List[str]:
    """
    Return tracked and untracked paths under *root*, relative to it.

    Files excluded by the standard git ignore sources are left out.
    """
    out = _git(root, "ls-files", "-z", "--cached", "--others", "--exclude-standard")
    # --cached lists a path once per index stage during a merge
    return sorted({p for p in out.split("\0") if p})


# File enumeration
def is_candidate(rel_path: str, extensions: Set[str]) -> bool:
    """``Cargo.toml`` always qualifies; other files by their extension."""
    name = rel_path.rsplit("/", 1)[-1]
    if name == MANIFEST_NAME:
        return True
    _, dot, ext = name.rpartition(".")
    return bool(dot) and ext in extensions


def enumerate_files(
    root: Path,
    extensions: Optional[Iterable[str]] = None,
    extra_spec: Optional["pathspec.PathSpec"] = None,
    lister: Optional[Lister] = None,
) -> Set[Path]:
    """
    Collect the files of *root* that belong in the bundle.

    *lister* yields root-relative POSIX paths (``git ls-files`` by default).
    Paths matched by the root ``.gitignore``, :data:`DEFAULT_PATTERNS` or
    *extra_spec* are dropped, even when git tracks them. Entries that are not
    regular files in the work tree are skipped.
    """
    allowed = normalize_extensions(extensions)
    gitignore_spec = load_gitignore(root)
    lister = lister or list_repository_files

    kept: Set[Path] = set()
    for rel in lister(root):
        if not is_candidate(rel, allowed):
            continue
        if gitignore_spec.match_file(rel):
            continue
        if DEFAULT_SPEC.match_file(rel):
            continue
        if extra_spec and extra_spec.match_file(rel):
            continue
        path = root / rel
        if not path.is_file():
            continue
        kept.add(path)
    return kept


# Bundle composition
def format_header(name: str, version: str, rel: str) -> str:
    return f"=== {name} v{version} :: {rel} ===\n"


def _read_source(path: Path, rel: str) -> str:
    try:
        return path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(f"Could not read '{rel}': {e}")


def compose_bundle(paths: Iterable[Path], root: Path, crates: CrateMap) -> str:
    """
    Render *paths* in sorted order, each under a crate header.

    Raises:
        FileReadError: if any file cannot be read; no partial text is returned.
    """
    parts: List[str] = []
    for p in sorted(paths):
        try:
            rel = p.relative_to(root).as_posix()
        except ValueError:
            rel = p.as_posix()
        record = crate_for_path(p, crates)
        parts.append(format_header(record.name, record.version, rel))
        parts.append(_read_source(p, rel))
        parts.append("\n")
    return "".join(parts)


# Delivery
def deliver(text: str, use_clipboard: bool = True) -> bool:
    """
    Send *text* to the clipboard, or to stdout when that is not wanted or
    not possible. Returns ``True`` when the clipboard received it.
    """
    if use_clipboard:
        try:
            pyperclip.copy(text)
            return True
        except pyperclip.PyperclipException as e:
            report(f"clipboard error ({e}); printing", warning=True)
    sys.stdout.flush()
    sys.stdout.buffer.write(text.encode("utf-8"))
    sys.stdout.buffer.flush()
    return False
