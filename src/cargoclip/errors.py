"""
Exception hierarchy for cargoclip.
"""


class CargoclipError(Exception):
    """Base exception for cargoclip errors."""


class InvalidRootError(CargoclipError):
    """Raised when the provided root directory is invalid."""


class NotARepositoryError(CargoclipError):
    """Raised when the root is not inside a git work tree."""


class ManifestError(CargoclipError):
    """Raised when a Cargo.toml cannot be read or is malformed."""


class ConfigFileError(CargoclipError):
    """Raised when there are issues with config files."""


class FileReadError(CargoclipError):
    """Raised when a selected source file cannot be read."""
