"""
CLI entrypoint for cargoclip package.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .console import report
from .core import (
    DEFAULT_EXTENSIONS,
    compose_bundle,
    deliver,
    ensure_repository,
    enumerate_files,
    load_extra_patterns,
    normalize_extensions,
    resolve_root,
)
from .crates import build_crate_map
from .errors import CargoclipError


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    if argv is None:
        argv = sys.argv[1:]
    # `cargo clip ...` runs `cargo-clip clip ...`
    if argv and argv[0] == "clip":
        argv = argv[1:]

    p = argparse.ArgumentParser(
        prog="cargo-clip",
        description="Copy Rust sources and Cargo.toml files to the clipboard.",
    )
    p.add_argument(
        "-d",
        "--dir",
        "--root",
        dest="dir",
        type=Path,
        default=Path("."),
        help="Workspace or crate root (default: current directory)",
    )
    p.add_argument(
        "exts",
        nargs="*",
        help=f"Extensions to include (default: {' '.join(DEFAULT_EXTENSIONS)})",
    )
    p.add_argument(
        "--no-clipboard",
        action="store_true",
        help="Print to stdout instead of the clipboard",
    )
    p.add_argument(
        "--config",
        type=Path,
        help="Path to a file with extra ignore patterns (one per line)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def run(
    root: Path,
    exts: Optional[List[str]] = None,
    use_clipboard: bool = True,
    config: Optional[Path] = None,
    verbose: bool = False,
) -> str:
    """Build the bundle for *root* and deliver it. Returns the bundle text."""
    root = resolve_root(root)
    ensure_repository(root)

    extra_spec = None
    if config:
        extra_spec = load_extra_patterns(config.resolve())
        if verbose:
            report(f"Loaded extra patterns from {config}")

    extensions = normalize_extensions(exts)
    if verbose:
        report(f"Scanning {root} for {', '.join(sorted(extensions))} …")

    crates = build_crate_map(root, verbose=verbose)
    if verbose:
        report(f"{len(crates)} crate(s) found")

    files = enumerate_files(root, extensions, extra_spec)
    text = compose_bundle(files, root, crates)

    copied = deliver(text, use_clipboard=use_clipboard)
    if verbose:
        where = "clipboard" if copied else "stdout"
        report(f"Done → {where}. {len(files)} files, {len(text)} chars.", done=True)
    return text


def main(argv: Optional[List[str]] = None) -> None:
    try:
        ns = _parse_args(argv)
        run(
            ns.dir,
            exts=ns.exts,
            use_clipboard=not ns.no_clipboard,
            config=ns.config,
            verbose=ns.verbose,
        )
    except CargoclipError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
