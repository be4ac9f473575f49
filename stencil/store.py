"""Persistent name -> template entry store backed by a JSON file."""

from __future__ import annotations

import json
import logging
from collections.abc import Container, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping

from .errors import ConflictError, FilesystemError, NotFoundError
from .text import Messages
from .utils import is_within, remove_tree

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    source_input: str
    canonical_url: str
    local_path: Path
    commit: str | None = None
    member: str | None = None

    @property
    def is_remote(self) -> bool:
        return self.commit is not None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sourceInput": self.source_input,
            "canonicalUrl": self.canonical_url,
        }
        if self.commit is not None:
            data["commit"] = self.commit
        data["localPath"] = str(self.local_path)
        if self.member is not None:
            data["member"] = self.member
        return data

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "CacheEntry":
        return cls(
            source_input=str(data["sourceInput"]),
            canonical_url=str(data.get("canonicalUrl") or ""),
            local_path=Path(str(data["localPath"])),
            commit=data.get("commit") or None,
            member=data.get("member") or None,
        )


class ChangeKind(str, Enum):
    added = "added"
    removed = "removed"
    updated = "updated"


@dataclass(frozen=True, slots=True)
class Change:
    kind: ChangeKind
    name: str
    detail: str | None = None


class NameAllocator:
    """Hands out ``name-1``, ``name-2``... for colliding names within one run."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}

    def next(self, base: str, taken: Container[str]) -> str:
        while True:
            count = self._counters.get(base, 0) + 1
            self._counters[base] = count
            candidate = f"{base}-{count}"
            if candidate not in taken:
                return candidate


class Store:
    def __init__(
        self,
        path: Path,
        cache_dir: Path,
        entries: Mapping[str, CacheEntry] | None = None,
    ) -> None:
        self.path = path
        self.cache_dir = cache_dir
        self._entries: dict[str, CacheEntry] = dict(entries or {})
        self.changes: list[Change] = []

    @classmethod
    def load(cls, path: Path, cache_dir: Path) -> "Store":
        """Read *path*; a missing file becomes an empty store that is saved at once."""

        if not path.exists():
            store = cls(path, cache_dir)
            store.save()
            return store
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("expected a list of [name, entry] pairs")
            entries: dict[str, CacheEntry] = {}
            for item in raw:
                name, data = item
                entries[str(name)] = CacheEntry.from_json(data)
        except (ValueError, TypeError, KeyError) as exc:
            raise FilesystemError(
                Messages.ERROR_STORE_CORRUPT.format(path=path, reason=exc), path
            ) from exc
        except OSError as exc:
            raise FilesystemError(
                Messages.ERROR_FILESYSTEM.format(path=path, reason=exc.strerror or exc), path
            ) from exc
        return cls(path, cache_dir, entries)

    def save(self) -> None:
        payload = [[name, entry.to_json()] for name, entry in self._entries.items()]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps(payload, ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError as exc:
            raise FilesystemError(
                Messages.ERROR_FILESYSTEM.format(path=self.path, reason=exc.strerror or exc),
                self.path,
            ) from exc

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def get(self, name: str) -> CacheEntry | None:
        return self._entries.get(name)

    def items(self) -> list[tuple[str, CacheEntry]]:
        return list(self._entries.items())

    def names(self) -> list[str]:
        return list(self._entries)

    def add(
        self,
        name: str,
        entry: CacheEntry,
        *,
        replace: bool = False,
        names: NameAllocator | None = None,
    ) -> str:
        """Insert *entry* and return the key it was stored under."""

        key = name
        existing = self._entries.get(name)
        if existing is not None:
            if replace:
                if existing.local_path != entry.local_path:
                    self._discard_directory(existing)
                    self.changes.append(Change(ChangeKind.removed, name, "old"))
            else:
                key = (names or NameAllocator()).next(name, self._entries)
        self._entries[key] = entry
        self.changes.append(Change(ChangeKind.added, key, str(entry.local_path)))
        logger.debug("Stored %s -> %s", key, entry.local_path)
        return key

    def update(self, name: str, *, local_path: Path, commit: str | None) -> CacheEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise NotFoundError(Messages.ERROR_ITEM_NOT_FOUND.format(name=name))
        entry.local_path = local_path
        entry.commit = commit
        self.changes.append(Change(ChangeKind.updated, name, str(local_path)))
        return entry

    def remove(self, name: str) -> CacheEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise NotFoundError(Messages.ERROR_ITEM_NOT_FOUND.format(name=name))
        self._discard_directory(entry)
        del self._entries[name]
        self.changes.append(Change(ChangeKind.removed, name, str(entry.local_path)))
        return entry

    def rename(self, old: str, new: str) -> None:
        if old not in self._entries:
            raise NotFoundError(Messages.ERROR_ITEM_NOT_FOUND.format(name=old))
        if new in self._entries:
            raise ConflictError(Messages.ERROR_ITEM_EXISTS.format(name=new))
        self._entries = {
            (new if key == old else key): value for key, value in self._entries.items()
        }

    def prune(self) -> list[str]:
        """Drop entries whose directory no longer exists."""

        missing = [name for name, entry in self._entries.items() if not entry.local_path.exists()]
        for name in missing:
            entry = self._entries.pop(name)
            self.changes.append(Change(ChangeKind.removed, name, str(entry.local_path)))
        return missing

    def owns(self, path: Path) -> bool:
        """Return True when *path* is a cache slot (or inside one) managed by this store."""
        return path != self.cache_dir and is_within(path, self.cache_dir)

    def discard_path(self, path: Path) -> None:
        """Delete a cache slot, or a fan-out member and its slot once no entry uses it."""

        if not self.owns(path):
            return
        remove_tree(path)
        parent = path.parent
        if parent == self.cache_dir or not self.owns(parent):
            return
        in_use = any(
            entry.local_path != path and is_within(entry.local_path, parent)
            for entry in self._entries.values()
        )
        if not in_use:
            remove_tree(parent)

    def _discard_directory(self, entry: CacheEntry) -> None:
        self.discard_path(entry.local_path)
