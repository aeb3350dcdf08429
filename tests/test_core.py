from pathlib import Path

import pathspec
import pyperclip
import pytest

from cargoclip.core import (
    compose_bundle,
    deliver,
    enumerate_files,
    is_candidate,
    load_extra_patterns,
    normalize_extensions,
)
from cargoclip.crates import build_crate_map
from cargoclip.errors import ConfigFileError, FileReadError

from conftest import manifest, write


def listing(*rels):
    """Stand-in for ``git ls-files``: reports *rels* in the given order."""
    return lambda root: list(rels)


# Extension policy
@pytest.mark.parametrize(
    "rel, expected",
    [
        ("src/lib.rs", True),
        ("Cargo.toml", True),
        ("a/b/Cargo.toml", True),
        ("rustfmt.toml", True),
        ("README.md", False),
        ("Makefile", False),
        ("src/lib.rs.orig", False),
    ],
)
def test_is_candidate_defaults(rel, expected):
    assert is_candidate(rel, {"rs", "toml"}) is expected


def test_manifest_is_included_without_toml_extension():
    assert is_candidate("crate/Cargo.toml", {"rs"})
    assert not is_candidate("crate/rustfmt.toml", {"rs"})


def test_normalize_extensions():
    assert normalize_extensions(None) == {"rs", "toml"}
    assert normalize_extensions([]) == {"rs", "toml"}
    assert normalize_extensions([".md", "rs"]) == {"md", "rs"}


# Enumeration
def test_enumerate_filters_by_extension(project):
    for rel in ("Cargo.toml", "src/lib.rs", "README.md"):
        write(project, rel)
    lister = listing("README.md", "src/lib.rs", "Cargo.toml")
    assert enumerate_files(project, ["rs"], lister=lister) == {
        project / "Cargo.toml",
        project / "src" / "lib.rs",
    }


def test_enumerate_skips_deny_listed_directories(project):
    for rel in ("src/lib.rs", "target/debug/build/out.rs", "vendor/dep/Cargo.toml"):
        write(project, rel)
    lister = listing("src/lib.rs", "target/debug/build/out.rs", "vendor/dep/Cargo.toml")
    assert enumerate_files(project, lister=lister) == {project / "src" / "lib.rs"}


def test_enumerate_honours_gitignore_for_listed_files(project):
    write(project, ".gitignore", "generated/\n*.bak.rs\n")
    for rel in ("src/lib.rs", "generated/api.rs", "src/old.bak.rs"):
        write(project, rel)
    lister = listing("src/lib.rs", "generated/api.rs", "src/old.bak.rs")
    assert enumerate_files(project, lister=lister) == {project / "src" / "lib.rs"}


def test_enumerate_applies_extra_patterns(project):
    for rel in ("src/lib.rs", "benches/big.rs"):
        write(project, rel)
    extra = pathspec.PathSpec.from_lines("gitwildmatch", ["benches/"])
    lister = listing("src/lib.rs", "benches/big.rs")
    assert enumerate_files(project, extra_spec=extra, lister=lister) == {
        project / "src" / "lib.rs"
    }


def test_enumerate_skips_entries_missing_from_worktree(project):
    write(project, "src/lib.rs")
    (project / "submodule").mkdir()
    lister = listing("src/lib.rs", "src/deleted.rs", "submodule")
    assert enumerate_files(project, lister=lister) == {
        project / "src" / "lib.rs"
    }


def test_enumeration_is_idempotent(project):
    write(project, "Cargo.toml", manifest("foo", "1.0.0"))
    write(project, "src/lib.rs", "pub mod a;\n")
    write(project, "src/a.rs", "pub fn a() {}\n")
    crates = build_crate_map(project)

    first = enumerate_files(project, lister=listing("src/lib.rs", "src/a.rs", "Cargo.toml"))
    second = enumerate_files(project, lister=listing("Cargo.toml", "src/a.rs", "src/lib.rs"))
    assert first == second
    assert compose_bundle(first, project, crates) == compose_bundle(second, project, crates)


# Extra patterns file
def test_load_extra_patterns_skips_comments(tmp_path):
    cfg = write(tmp_path, "ignore.txt", "# comment\n\nexamples/\n")
    spec = load_extra_patterns(cfg)
    assert spec.match_file("examples/demo.rs")
    assert not spec.match_file("src/lib.rs")


def test_load_extra_patterns_missing_file(tmp_path):
    with pytest.raises(ConfigFileError):
        load_extra_patterns(tmp_path / "nope.txt")


# Composition
def test_compose_single_crate(project):
    write(project, "pkgA/Cargo.toml", manifest("foo", "1.0.0"))
    write(project, "pkgA/src/lib.rs", "pub fn foo() {}\n")
    files = enumerate_files(project, lister=listing("pkgA/src/lib.rs", "pkgA/Cargo.toml"))

    assert compose_bundle(files, project, build_crate_map(project)) == (
        "=== foo v1.0.0 :: pkgA/Cargo.toml ===\n"
        + manifest("foo", "1.0.0")
        + "\n"
        "=== foo v1.0.0 :: pkgA/src/lib.rs ===\n"
        "pub fn foo() {}\n"
        "\n"
    )


def test_compose_workspace_member_uses_member_identity(project):
    write(project, "Cargo.toml", manifest("ws", "9.9.9") + '\n[workspace]\nmembers = ["memberB"]\n')
    write(project, "memberB/Cargo.toml", manifest("bar", "0.2.0"))
    main_rs = write(project, "memberB/src/main.rs", "fn main() {}")

    text = compose_bundle([main_rs], project, build_crate_map(project))
    assert text == "=== bar v0.2.0 :: memberB/src/main.rs ===\nfn main() {}\n"


def test_compose_file_outside_any_crate(project):
    path = write(project, "scripts/gen.rs", "")
    text = compose_bundle([path], project, build_crate_map(project))
    assert text == "=== unknown_crate v? :: scripts/gen.rs ===\n\n"


def test_compose_keeps_content_verbatim(project):
    path = write(project, "src/win.rs", "fn a() {}\r\nfn b() {}\r\n")
    text = compose_bundle([path], project, {})
    assert "fn a() {}\r\nfn b() {}\r\n\n" in text


def test_compose_unreadable_file_is_fatal(project):
    ok = write(project, "a.rs", "ok")
    with pytest.raises(FileReadError):
        compose_bundle([ok, project / "gone.rs"], project, {})


def test_compose_non_utf8_file_is_fatal(project):
    bad = project / "latin1.rs"
    bad.write_bytes(b"// caf\xe9\n")
    with pytest.raises(FileReadError):
        compose_bundle([bad], project, {})


# Delivery
def test_deliver_to_clipboard(monkeypatch, capsys):
    copied = []
    monkeypatch.setattr(pyperclip, "copy", copied.append)
    assert deliver("bundle", use_clipboard=True) is True
    assert copied == ["bundle"]
    assert capsys.readouterr().out == ""


def test_deliver_falls_back_to_stdout(monkeypatch, capsys):
    def unavailable(text):
        raise pyperclip.PyperclipException("no clipboard mechanism")

    monkeypatch.setattr(pyperclip, "copy", unavailable)
    assert deliver("=== x v1 :: a.rs ===\nbody\n") is False
    captured = capsys.readouterr()
    assert captured.out == "=== x v1 :: a.rs ===\nbody\n"
    assert "clipboard error (no clipboard mechanism); printing" in captured.err


def test_deliver_without_clipboard(monkeypatch, capsys):
    def fail(text):
        raise AssertionError("clipboard must not be touched")

    monkeypatch.setattr(pyperclip, "copy", fail)
    assert deliver("text", use_clipboard=False) is False
    assert capsys.readouterr().out == "text"


def test_deliver_writes_utf8_bytes_unchanged(capsysbinary):
    deliver("// café\r\nfn x() {}\n", use_clipboard=False)
    assert capsysbinary.readouterr().out == "// café\r\nfn x() {}\n".encode("utf-8")
