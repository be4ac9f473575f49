"""Stencil package initialization."""

from __future__ import annotations

from .config import Config, Context
from .errors import (
    AuthError,
    ConflictError,
    FilesystemError,
    NotFoundError,
    ParseError,
    StencilError,
    TransportError,
)
from .reference import RefKind, RefQuery, SourceReference, parse, parse_source
from .store import CacheEntry, Store

__all__ = [
    "__version__",
    "AuthError",
    "CacheEntry",
    "Config",
    "ConflictError",
    "Context",
    "FilesystemError",
    "NotFoundError",
    "ParseError",
    "RefKind",
    "RefQuery",
    "SourceReference",
    "StencilError",
    "Store",
    "TransportError",
    "get_version",
    "parse",
    "parse_source",
]

__version__ = "0.3.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
