"""
Crate metadata: reading ``Cargo.toml`` files, building the directory -> crate
map for a project root, and resolving which crate owns a given file.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .console import report
from .errors import ManifestError

MANIFEST_NAME = "Cargo.toml"
WORKSPACE_VERSION = "<workspace>"
UNKNOWN_VERSION = "unknown"
DEPENDENCY_TABLES = ("dependencies", "dev-dependencies", "build-dependencies")


@dataclass(frozen=True)
class PackageRecord:
    """Name and version of one crate."""

    name: str
    version: str


UNKNOWN_CRATE = PackageRecord("unknown_crate", "?")

CrateMap = Dict[Path, PackageRecord]


# Manifest reading
def read_manifest(path: Path) -> Dict[str, Any]:
    """Parse *path* as TOML, wrapping any failure in :class:`ManifestError`."""
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ManifestError(f"Could not parse manifest '{path}': {e}")


def _format_version(version: Any, inherited: Optional[str] = None) -> str:
    if isinstance(version, str):
        return version
    if isinstance(version, dict) and version.get("workspace") is True:
        return inherited or WORKSPACE_VERSION
    return UNKNOWN_VERSION


def _record_from_manifest(
    data: Dict[str, Any], path: Path, inherited: Optional[str] = None
) -> Optional[PackageRecord]:
    pkg = data.get("package")
    if pkg is None:
        return None
    if not isinstance(pkg, dict) or not isinstance(pkg.get("name"), str):
        raise ManifestError(f"Manifest '{path}' has a [package] without a name")
    return PackageRecord(pkg["name"], _format_version(pkg.get("version"), inherited))


def package_from_manifest(path: Path) -> Optional[PackageRecord]:
    """
    Read the ``[package]`` section of the manifest at *path*.

    Returns ``None`` for manifests without one, such as virtual workspace
    roots. A version inherited from the workspace is reported as
    ``<workspace>`` since only the manifest itself is consulted.
    """
    return _record_from_manifest(read_manifest(path), path)


def _member_dirs(root: Path, patterns: Any, manifest: Path) -> Iterator[Path]:
    if not isinstance(patterns, list):
        raise ManifestError(f"workspace.members in '{manifest}' must be an array")
    for pattern in patterns:
        if not isinstance(pattern, str):
            raise ManifestError(f"Invalid workspace member {pattern!r} in '{manifest}'")
        pattern = pattern.strip("/")
        if pattern in ("", "."):
            yield root
            continue
        if Path(pattern).is_absolute():
            raise ManifestError(f"Workspace member '{pattern}' must be relative")
        yield from sorted(_normalize(p) for p in root.glob(pattern) if p.is_dir())


def _workspace_member_dirs(root: Path, workspace: Dict[str, Any], manifest: Path) -> List[Path]:
    exclude = workspace.get("exclude", [])
    if not isinstance(exclude, list):
        raise ManifestError(f"workspace.exclude in '{manifest}' must be an array")
    excluded = {root / str(e).strip("/") for e in exclude}

    dirs: List[Path] = []
    for member in _member_dirs(root, workspace.get("members", []), manifest):
        if member in excluded or member in dirs:
            continue
        if (member / MANIFEST_NAME).is_file():
            dirs.append(member)
    return dirs


def _shared_version(data: Dict[str, Any]) -> Optional[str]:
    shared = data.get("workspace", {}).get("package")
    version = shared.get("version") if isinstance(shared, dict) else None
    return version if isinstance(version, str) else None


def workspace_members(root: Path) -> CrateMap:
    """
    Return the crates of the workspace rooted at *root*.

    Member globs are expanded relative to *root*, ``workspace.exclude``
    entries are dropped, and directories without a ``Cargo.toml`` are skipped.
    A root that is also a package is included. A manifest without a
    ``[workspace]`` table yields an empty map.

    Raises:
        ManifestError: if the root or any member manifest is malformed.
    """
    manifest = root / MANIFEST_NAME
    data = read_manifest(manifest)
    workspace = data.get("workspace")
    if not isinstance(workspace, dict):
        return {}
    inherited = _shared_version(data)

    members: CrateMap = {}
    record = _record_from_manifest(data, manifest, inherited)
    if record is not None:
        members[root] = record

    for member in _workspace_member_dirs(root, workspace, manifest):
        if member in members:
            continue
        member_manifest = member / MANIFEST_NAME
        record = _record_from_manifest(
            read_manifest(member_manifest), member_manifest, inherited
        )
        if record is not None:
            members[member] = record
    return members


def find_workspace(
    crate_dir: Path, data: Dict[str, Any]
) -> Optional[Tuple[Path, Dict[str, Any]]]:
    """
    Locate the workspace a crate belongs to.

    ``package.workspace`` names it explicitly; otherwise the nearest manifest
    with a ``[workspace]`` table, starting at *crate_dir* itself, is used.
    Returns ``(workspace_dir, workspace_manifest_data)`` or ``None``.
    """
    pkg = data.get("package")
    explicit = pkg.get("workspace") if isinstance(pkg, dict) else None
    if isinstance(explicit, str):
        ws_dir = _normalize(crate_dir / explicit)
        ws_manifest = ws_dir / MANIFEST_NAME
        ws_data = read_manifest(ws_manifest)
        if not isinstance(ws_data.get("workspace"), dict):
            raise ManifestError(f"'{ws_manifest}' has no [workspace] table")
        return ws_dir, ws_data

    for directory in (crate_dir, *crate_dir.parents):
        manifest = directory / MANIFEST_NAME
        if not manifest.is_file():
            continue
        ws_data = data if directory == crate_dir else read_manifest(manifest)
        if isinstance(ws_data.get("workspace"), dict):
            return directory, ws_data
    return None


def _inherits_version(data: Dict[str, Any]) -> bool:
    pkg = data.get("package")
    version = pkg.get("version") if isinstance(pkg, dict) else None
    return isinstance(version, dict) and version.get("workspace") is True


def _normalize(path: Path) -> Path:
    return Path(os.path.normpath(path))


def _dependency_tables(data: Dict[str, Any]) -> Iterator[Any]:
    for key in DEPENDENCY_TABLES:
        yield data.get(key)
    targets = data.get("target")
    if isinstance(targets, dict):
        for target in targets.values():
            if isinstance(target, dict):
                for key in DEPENDENCY_TABLES:
                    yield target.get(key)
    workspace = data.get("workspace")
    if isinstance(workspace, dict):
        yield workspace.get("dependencies")


def path_dependencies(crate_dir: Path, data: Dict[str, Any]) -> List[Path]:
    """Directories of the ``{ path = ... }`` dependencies declared in *data*."""
    found: List[Path] = []
    for table in _dependency_tables(data):
        if not isinstance(table, dict):
            continue
        for dep in table.values():
            if isinstance(dep, dict) and isinstance(dep.get("path"), str):
                found.append(_normalize(crate_dir / dep["path"]))
    return found


def local_packages(root: Path) -> CrateMap:
    """
    Return every local crate reachable from the manifest at *root*.

    That is the root package, every member of the workspace it belongs to
    (which may live above *root*), and all ``path`` dependencies of those,
    followed recursively. Inherited versions take ``workspace.package.version``
    from each crate's own workspace.

    Raises:
        ManifestError: if any manifest involved is missing or malformed.
    """
    data = read_manifest(root / MANIFEST_NAME)
    pending: List[Path] = [root]
    workspace = find_workspace(root, data)
    if workspace is not None:
        ws_dir, ws_data = workspace
        pending.append(ws_dir)
        pending.extend(
            _workspace_member_dirs(ws_dir, ws_data["workspace"], ws_dir / MANIFEST_NAME)
        )

    crates: CrateMap = {}
    seen: Set[Path] = set()
    while pending:
        crate_dir = pending.pop()
        if crate_dir in seen:
            continue
        seen.add(crate_dir)

        manifest = crate_dir / MANIFEST_NAME
        data = read_manifest(manifest)
        inherited = None
        if _inherits_version(data):
            owner = find_workspace(crate_dir, data)
            inherited = _shared_version(owner[1]) if owner is not None else None
        record = _record_from_manifest(data, manifest, inherited)
        if record is not None:
            crates[crate_dir] = record
        pending.extend(path_dependencies(crate_dir, data))
    return crates


# Index construction
def build_crate_map(root: Path, verbose: bool = False) -> CrateMap:
    """
    Map each crate directory known to *root*'s manifest to its
    :class:`PackageRecord`.

    Workspace members and path dependencies come first; a broken description
    is not an error and just leaves them out. A standalone ``Cargo.toml`` at
    the root is then added unless the root is already known. That manifest
    failing to parse raises :class:`ManifestError`.
    """
    crates: CrateMap = {}

    root_manifest = root / MANIFEST_NAME
    if root_manifest.is_file():
        try:
            crates.update(local_packages(root))
        except ManifestError as e:
            if verbose:
                report(f"! No workspace metadata: {e}", warning=True)

    if root not in crates and root_manifest.is_file():
        record = package_from_manifest(root_manifest)
        if record is not None:
            crates[root] = record
    return crates


# Resolution
def _find_manifest_upwards(start: Path) -> Optional[PackageRecord]:
    for directory in (start, *start.parents):
        manifest = directory / MANIFEST_NAME
        if not manifest.is_file():
            continue
        try:
            record = package_from_manifest(manifest)
        except ManifestError:
            continue
        if record is not None:
            return record
    return None


def crate_for_path(path: Path, crates: CrateMap) -> PackageRecord:
    """
    Return the crate owning *path*.

    The deepest directory of *crates* containing *path* wins. Files outside
    every known crate fall back to the nearest ``Cargo.toml`` with a package
    above them, then to :data:`UNKNOWN_CRATE`.
    """
    parent = path.parent
    best: Optional[PackageRecord] = None
    best_depth = -1
    for directory, record in crates.items():
        if directory != parent and directory not in parent.parents:
            continue
        depth = len(directory.parts)
        if depth > best_depth:
            best, best_depth = record, depth
    if best is not None:
        return best
    return _find_manifest_upwards(parent) or UNKNOWN_CRATE
