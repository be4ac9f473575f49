"""Download, unpack and stage repository archives into cache slots."""

from __future__ import annotations

import asyncio
import logging
import zipfile
from pathlib import Path
from typing import Sequence

import httpx

from ..errors import AuthError, FilesystemError, NotFoundError, TransportError
from ..text import Messages
from ..utils import copy_tree, random_suffix, remove_tree

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class ArchiveFetcher:
    """Turns an archive URL into a filtered directory under a parent directory."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def fetch(
        self,
        cache_root: Path,
        archive_url: str,
        final_name: str,
        subdir: Sequence[str] | None = None,
    ) -> Path:
        """Materialize *archive_url* at ``cache_root / final_name`` and return that path.

        The temporary archive and extraction directory are removed whether or
        not staging succeeds.
        """

        try:
            cache_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(
                Messages.ERROR_FILESYSTEM.format(path=cache_root, reason=exc.strerror or exc),
                cache_root,
            ) from exc
        archive_file = cache_root / f"{random_suffix()}.zip"
        extract_dir = archive_file.with_suffix("")
        try:
            await self._download(archive_url, archive_file)
            await _extract(archive_file, extract_dir)
            source = _locate_root(extract_dir, archive_url)
            if subdir:
                source = source.joinpath(*subdir)
                if not source.is_dir():
                    raise NotFoundError(Messages.ERROR_SUBDIR_MISSING.format(path="/".join(subdir)))
            final_path = cache_root / final_name
            await copy_tree(source, final_path)
        finally:
            remove_tree(archive_file)
            remove_tree(extract_dir)
        logger.debug("Staged %s at %s", archive_url, final_path)
        return final_path

    async def _download(self, url: str, destination: Path) -> None:
        logger.debug("Downloading %s to %s", url, destination)
        try:
            async with self.client.stream("GET", url) as response:
                if response.status_code in (401, 403):
                    raise AuthError(
                        Messages.ERROR_TOKEN_REJECTED.format(reason=f"HTTP {response.status_code}")
                    )
                response.raise_for_status()
                with open(destination, "wb") as out_file:
                    async for chunk in response.aiter_bytes(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        out_file.write(chunk)
        except httpx.HTTPError as exc:
            raise TransportError(
                Messages.ERROR_DOWNLOAD_FAILED.format(url=url, reason=exc)
            ) from exc
        except OSError as exc:
            raise FilesystemError(
                Messages.ERROR_FILESYSTEM.format(path=destination, reason=exc.strerror or exc),
                destination,
            ) from exc


async def _extract(archive_file: Path, target: Path) -> None:
    try:
        with zipfile.ZipFile(archive_file) as archive:
            for member in archive.infolist():
                archive.extract(member, target)
                await asyncio.sleep(0)
    except zipfile.BadZipFile as exc:
        raise TransportError(Messages.ERROR_ARCHIVE_INVALID.format(path=archive_file)) from exc
    except OSError as exc:
        raise FilesystemError(
            Messages.ERROR_FILESYSTEM.format(path=target, reason=exc.strerror or exc),
            target,
        ) from exc


def _locate_root(extract_dir: Path, archive_url: str) -> Path:
    """Return the directory holding the repository tree inside an extraction."""

    entries = list(extract_dir.iterdir()) if extract_dir.is_dir() else []
    if not entries:
        raise NotFoundError(Messages.ERROR_ARCHIVE_EMPTY.format(url=archive_url))
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return extract_dir
