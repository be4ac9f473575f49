"""Parse template source strings into structured references.

Shorthand grammar::

    reference := segment "/" segment ("/" segment)* ("?" kind "=" value)?
    segment   := one or more characters other than "/", "?"
    kind      := "branch" | "tag" | "commit"
    value     := one or more characters

Whitespace is never allowed inside a reference. GitHub URLs are accepted too
and are normalized into the same structure.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Sequence
from urllib.parse import urlparse

from .errors import ParseError
from .text import Messages

GITHUB_HOSTS = frozenset({"github.com", "www.github.com"})
_RESERVED_SEGMENTS = frozenset({".", ".."})


class RefKind(str, Enum):
    branch = "branch"
    tag = "tag"
    commit = "commit"


@dataclass(frozen=True, slots=True)
class RefQuery:
    kind: RefKind
    value: str

    def __str__(self) -> str:
        return f"{self.kind.value}={self.value}"


@dataclass(frozen=True, slots=True)
class SourceReference:
    owner: str
    name: str
    subdir: tuple[str, ...] | None = None
    query: RefQuery | None = None

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def subdir_path(self) -> str | None:
        if not self.subdir:
            return None
        return "/".join(self.subdir)

    @property
    def default_name(self) -> str:
        """Name used for the template when the caller does not pick one."""
        if self.subdir:
            return self.subdir[-1]
        return self.name

    def __str__(self) -> str:
        text = self.slug
        if self.subdir:
            text = f"{text}/{self.subdir_path}"
        if self.query is not None:
            text = f"{text}?{self.query}"
        return text


class _ReferenceParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def parse(self) -> SourceReference:
        if any(ch.isspace() for ch in self.text):
            raise self._error("embedded whitespace")
        owner = self._segment("owner")
        if self._peek() != "/":
            raise self._error("missing name")
        self.pos += 1
        name = self._segment("name")
        subdir: list[str] = []
        while self._peek() == "/":
            self.pos += 1
            subdir.append(self._segment("path segment"))
        query = None
        if self._peek() == "?":
            self.pos += 1
            query = self._query()
        if self.pos != len(self.text):
            raise self._error(f"unexpected '{self.text[self.pos]}'")
        return SourceReference(
            owner=owner,
            name=name,
            subdir=tuple(subdir) if subdir else None,
            query=query,
        )

    def _peek(self) -> str | None:
        if self.pos >= len(self.text):
            return None
        return self.text[self.pos]

    def _segment(self, role: str) -> str:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in "/?":
            self.pos += 1
        segment = self.text[start : self.pos]
        if not segment:
            raise self._error(f"missing {role}")
        if segment in _RESERVED_SEGMENTS:
            raise self._error(f"invalid {role} '{segment}'")
        return segment

    def _query(self) -> RefQuery:
        rest = self.text[self.pos :]
        kind, sep, value = rest.partition("=")
        if not sep or not kind:
            raise self._error("malformed query")
        try:
            ref_kind = RefKind(kind)
        except ValueError:
            raise self._error(f"unknown query kind '{kind}'") from None
        if not value:
            raise self._error("malformed query")
        self.pos = len(self.text)
        return RefQuery(kind=ref_kind, value=value)

    def _error(self, reason: str) -> ParseError:
        return ParseError(Messages.ERROR_PARSE_DETAIL.format(value=self.text, reason=reason))


def parse(text: str) -> SourceReference:
    """Parse ``owner/name(/subdir)*(?kind=value)?`` into a SourceReference."""

    return _ReferenceParser(text.strip()).parse()


def parse_url(text: str) -> SourceReference:
    """Parse a GitHub URL such as ``https://github.com/owner/name/tree/main/sub``."""

    clean = text.strip()
    parsed = urlparse(clean)
    if parsed.scheme not in {"http", "https"} or parsed.netloc.lower() not in GITHUB_HOSTS:
        raise ParseError(Messages.ERROR_PARSE.format(value=clean))
    parts = parsed.path.split("/")
    if parts and parts[0] == "":
        parts = parts[1:]
    if parts and parts[-1] == "":
        parts = parts[:-1]
    if len(parts) < 2:
        raise ParseError(Messages.ERROR_PARSE_DETAIL.format(value=clean, reason="missing name"))
    owner, name, rest = parts[0], parts[1], parts[2:]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    tree_query = None
    if len(rest) >= 2 and rest[0] == "tree":
        tree_query = RefQuery(kind=RefKind.branch, value=rest[1])
        rest = rest[2:]
    shorthand = "/".join([owner, name, *rest])
    if parsed.query:
        shorthand = f"{shorthand}?{parsed.query}"
    reference = parse(shorthand)
    if tree_query is None:
        return reference
    if reference.query is not None:
        raise ParseError(
            Messages.ERROR_PARSE_DETAIL.format(value=clean, reason="conflicting refs")
        )
    return SourceReference(
        owner=reference.owner,
        name=reference.name,
        subdir=reference.subdir,
        query=tree_query,
    )


def is_url(text: str) -> bool:
    return text.strip().lower().startswith(("http://", "https://"))


def looks_like_local_path(text: str) -> bool:
    clean = text.strip()
    if not clean:
        return False
    if clean.startswith((".", "/", "~", "\\")) or os.path.isabs(clean):
        return True
    return len(clean) > 1 and clean[1] == ":" and clean[0].isalpha()


def is_reference(text: str) -> bool:
    try:
        parse(text)
    except ParseError:
        return False
    return True


def is_remote_source(text: str) -> bool:
    """Return True when *text* names a remote repository rather than a local directory."""

    if is_url(text):
        return True
    if looks_like_local_path(text):
        return False
    return is_reference(text)


def parse_source(text: str) -> SourceReference:
    if is_url(text):
        return parse_url(text)
    return parse(text)


def partition_sources(sources: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split inputs into ``(local_paths, remote_references)`` preserving order."""

    locals_: list[str] = []
    remotes: list[str] = []
    for source in sources:
        if is_remote_source(source):
            remotes.append(source)
        else:
            locals_.append(source)
    return locals_, remotes
