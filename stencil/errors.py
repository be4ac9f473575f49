"""Error types raised by Stencil components."""

from __future__ import annotations

from pathlib import Path


class StencilError(Exception):
    """Base class for expected, user-facing failures."""


class ParseError(StencilError, ValueError):
    """Raised when a source string is not a valid reference."""


class AuthError(StencilError):
    """Raised when the remote requires a credential that is missing or rejected."""


class NotFoundError(StencilError):
    """Raised for an unknown repository, ref, commit, store entry or path."""


class ConflictError(StencilError):
    """Raised for duplicate names and self-copies."""


class FilesystemError(StencilError):
    """Wraps an OS-level failure with the path it concerns."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class TransportError(StencilError):
    """Raised when a request or download fails in transit."""
