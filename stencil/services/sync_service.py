"""Coordinate parsing, resolution, fetching and the store for each command."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Sequence

import httpx

from ..config import Context
from ..errors import ConflictError, FilesystemError, NotFoundError, StencilError
from ..reference import is_remote_source, parse_source, partition_sources
from ..store import CacheEntry, Change, NameAllocator, Store
from ..text import Messages
from ..utils import (
    copy_tree,
    is_within,
    list_child_units,
    random_suffix,
    remove_tree,
    resolve_directory,
    resolve_target,
    uniq,
)
from .fetch_service import ArchiveFetcher
from .http_service import build_client
from .resolver_service import GitHubResolver

logger = logging.getLogger(__name__)

SUPPORTED_DEPTHS: tuple[int, ...] = (0, 1)


@dataclass(slots=True)
class SyncReport:
    """Outcome of a batch: one success or one failure message per unit."""

    success: int = 0
    failed: list[str] = field(default_factory=list)
    changes: list[Change] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def slot_name(name: str) -> str:
    return f"{name}-{random_suffix()}"


class SyncService:
    def __init__(
        self,
        context: Context,
        store: Store,
        resolver: GitHubResolver,
        fetcher: ArchiveFetcher,
        *,
        cwd: Path | None = None,
    ) -> None:
        self.context = context
        self.store = store
        self.resolver = resolver
        self.fetcher = fetcher
        self.cwd = cwd or Path.cwd()

    async def add(
        self,
        sources: Sequence[str],
        depth: int = 0,
        *,
        name: str | None = None,
        replace: bool = False,
    ) -> SyncReport:
        """Store every source as a template, collecting per-source failures."""

        if depth not in SUPPORTED_DEPTHS:
            raise ValueError(Messages.ERROR_DEPTH_INVALID.format(value=depth))
        local_sources, remote_sources = partition_sources(uniq(sources))
        names = NameAllocator()
        labels: list[str] = []
        units: list[Awaitable[None]] = []
        for source in local_sources:
            labels.append(source)
            units.append(self._add_local(source, depth, name, replace, names))
        for source in remote_sources:
            labels.append(source)
            units.append(self._add_remote(source, depth, name, replace, names))
        return await self._run_batch(labels, units)

    async def remove(self, names: Sequence[str]) -> SyncReport:
        targets = uniq(names)
        return await self._run_batch(targets, [self._remove_one(name) for name in targets])

    async def create(
        self,
        source: str,
        destination: Path | str | None = None,
        *,
        overwrite: bool = False,
    ) -> Path:
        """Materialize *source* at *destination* and return the created directory.

        *source* may be a stored name, a remote reference or a local directory.
        Stored remote entries are refreshed first when their commit is stale.
        """

        entry = self.store.get(source)
        if entry is not None:
            target = resolve_target(destination or source, self.cwd)
            self._check_target(entry.local_path, target, overwrite)
            if entry.is_remote:
                entry = await self.refresh(source)
            return await self._copy(entry.local_path, target, overwrite)

        if is_remote_source(source):
            ref = parse_source(source)
            target = resolve_target(destination or ref.default_name, self.cwd)
            self._check_target(None, target, overwrite)
            resolved = await self.resolver.resolve(ref)
            return await self._materialize(
                target,
                overwrite,
                lambda parent, name: self.fetcher.fetch(
                    parent, resolved.archive_url, name, ref.subdir
                ),
            )

        local_path = resolve_directory(source, self.cwd)
        target = resolve_target(destination or local_path.name, self.cwd)
        self._check_target(local_path, target, overwrite)
        return await self._copy(local_path, target, overwrite)

    async def refresh(self, name: str) -> CacheEntry:
        """Refetch a stored remote entry when its recorded commit is out of date."""

        entry = self.store.get(name)
        if entry is None:
            raise NotFoundError(Messages.ERROR_ITEM_NOT_FOUND.format(name=name))
        if not entry.is_remote:
            return entry
        ref = parse_source(entry.source_input)
        resolved = await self.resolver.resolve(ref)
        if resolved.commit == entry.commit and entry.local_path.exists():
            return entry

        logger.debug("%s is stale (%s -> %s)", name, entry.commit, resolved.commit)
        subdir = list(ref.subdir or ())
        if entry.member:
            subdir.append(entry.member)
        new_path = await self.fetcher.fetch(
            self.context.cache_dir,
            resolved.archive_url,
            slot_name(name),
            subdir or None,
        )
        old_path = entry.local_path
        self.store.update(name, local_path=new_path, commit=resolved.commit)
        if old_path != new_path:
            self.store.discard_path(old_path)
        self.store.save()
        return entry

    def rename(self, old: str, new: str) -> None:
        if old == new:
            return
        self.store.rename(old, new)
        self.store.save()

    def list_entries(self, *, prune: bool = False) -> tuple[list[tuple[str, CacheEntry]], list[str]]:
        """Return stored entries and, when pruning, the names that were dropped."""

        pruned: list[str] = []
        if prune:
            pruned = self.store.prune()
            self.store.save()
        return self.store.items(), pruned

    async def _run_batch(self, labels: Sequence[str], units: Sequence[Awaitable[None]]) -> SyncReport:
        start = len(self.store.changes)
        report = SyncReport()
        fatal: BaseException | None = None
        try:
            results = await asyncio.gather(*units, return_exceptions=True)
            for label, result in zip(labels, results):
                if isinstance(result, StencilError):
                    report.failed.append(f"{label}: {result}")
                elif isinstance(result, BaseException):
                    fatal = fatal or result
                else:
                    report.success += 1
        finally:
            self.store.save()
        report.changes = self.store.changes[start:]
        if fatal is not None:
            raise fatal
        return report

    async def _add_local(
        self,
        source: str,
        depth: int,
        name: str | None,
        replace: bool,
        names: NameAllocator,
    ) -> None:
        root = resolve_directory(source, self.cwd)
        if depth == 0:
            entry = CacheEntry(source_input=source, canonical_url=root.as_uri(), local_path=root)
            self.store.add(name or root.name, entry, replace=replace, names=names)
            return
        children = list_child_units(root)
        if not children:
            raise NotFoundError(Messages.ERROR_NO_CHILDREN.format(path=root))
        for child in children:
            entry = CacheEntry(source_input=source, canonical_url=child.as_uri(), local_path=child)
            self.store.add(child.name, entry, replace=replace, names=names)

    async def _add_remote(
        self,
        source: str,
        depth: int,
        name: str | None,
        replace: bool,
        names: NameAllocator,
    ) -> None:
        ref = parse_source(source)
        resolved = await self.resolver.resolve(ref)
        base_name = name or ref.default_name
        root = await self.fetcher.fetch(
            self.context.cache_dir,
            resolved.archive_url,
            slot_name(base_name),
            ref.subdir,
        )
        if depth == 0:
            entry = CacheEntry(
                source_input=source,
                canonical_url=resolved.canonical_url,
                local_path=root,
                commit=resolved.commit,
            )
            self.store.add(base_name, entry, replace=replace, names=names)
            return
        children = list_child_units(root)
        if not children:
            self.store.discard_path(root)
            raise NotFoundError(Messages.ERROR_NO_CHILDREN.format(path=ref))
        for child in children:
            entry = CacheEntry(
                source_input=source,
                canonical_url=resolved.canonical_url,
                local_path=child,
                commit=resolved.commit,
                member=child.name,
            )
            self.store.add(child.name, entry, replace=replace, names=names)

    async def _remove_one(self, name: str) -> None:
        self.store.remove(name)

    def _check_target(self, source: Path | None, target: Path, overwrite: bool) -> None:
        if source is not None and (
            target == source or is_within(source, target) or is_within(target, source)
        ):
            raise ConflictError(Messages.ERROR_SELF_COPY)
        if target.exists() and not overwrite:
            raise FilesystemError(Messages.ERROR_DIRECTORY_EXISTS.format(path=target), target)

    async def _copy(self, source: Path, target: Path, overwrite: bool) -> Path:
        return await self._materialize(
            target, overwrite, lambda parent, name: copy_tree(source, parent / name)
        )

    async def _materialize(
        self,
        target: Path,
        overwrite: bool,
        produce: Callable[[Path, str], Awaitable[Path]],
    ) -> Path:
        """Build *target* with *produce*; an overwritten target is replaced only on success."""

        if not (overwrite and target.exists()):
            return await produce(target.parent, target.name)
        staged_name = f".{target.name}-{random_suffix()}"
        try:
            staged = await produce(target.parent, staged_name)
        except Exception:
            remove_tree(target.parent / staged_name)
            raise
        remove_tree(target)
        try:
            staged.rename(target)
        except OSError as exc:
            raise FilesystemError(
                Messages.ERROR_FILESYSTEM.format(path=target, reason=exc.strerror or exc),
                target,
            ) from exc
        logger.debug("Replaced %s", target)
        return target


@asynccontextmanager
async def open_sync_service(
    context: Context,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    cwd: Path | None = None,
) -> AsyncIterator[SyncService]:
    """Yield a SyncService wired to a fresh HTTP client and the on-disk store."""

    async with build_client(context, transport=transport) as client:
        store = Store.load(context.store_file, context.cache_dir)
        yield SyncService(
            context,
            store,
            GitHubResolver(context, client),
            ArchiveFetcher(client),
            cwd=cwd,
        )
