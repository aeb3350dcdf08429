"""
cargoclip - copy a Rust project's sources to the clipboard for LLM prompts.

This package collects every ``*.rs`` file and every ``Cargo.toml`` of a git
work tree (honouring ``.gitignore``), labels each file with the crate it
belongs to, and hands the concatenated text to the clipboard or stdout.
"""

__version__ = "0.3.0"
__author__ = "cargoclip contributors"
