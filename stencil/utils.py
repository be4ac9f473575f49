"""Utility helpers for filesystem access and path handling."""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import shutil
from pathlib import Path
from typing import Iterable, List

from .errors import FilesystemError
from .text import Messages

logger = logging.getLogger(__name__)

VCS_DIRS = frozenset({".git", ".hg", ".svn"})
OS_METADATA_FILES = frozenset({".DS_Store", "Thumbs.db"})
DEPENDENCY_DIRS = frozenset({"node_modules"})
IGNORED_NAMES = VCS_DIRS | OS_METADATA_FILES | DEPENDENCY_DIRS


def resolve_directory(path: Path | str, cwd: Path | None = None) -> Path:
    """Resolve and validate a user supplied directory path."""
    dir_path = Path(path).expanduser()
    if not dir_path.is_absolute():
        dir_path = (cwd or Path.cwd()) / dir_path
    dir_path = dir_path.resolve()
    if not dir_path.exists():
        raise FilesystemError(Messages.ERROR_DIRECTORY_MISSING.format(path=dir_path), dir_path)
    if not dir_path.is_dir():
        raise FilesystemError(Messages.ERROR_NOT_A_DIRECTORY.format(path=dir_path), dir_path)
    return dir_path


def resolve_target(path: Path | str, cwd: Path | None = None) -> Path:
    target = Path(path).expanduser()
    if not target.is_absolute():
        target = (cwd or Path.cwd()) / target
    return Path(os.path.normpath(target))


def random_suffix(nbytes: int = 3) -> str:
    return secrets.token_hex(nbytes)


def uniq(values: Iterable[str]) -> List[str]:
    """Drop duplicates while keeping the first occurrence order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def is_within(path: Path, root: Path) -> bool:
    try:
        Path(os.path.normpath(path)).relative_to(Path(os.path.normpath(root)))
    except ValueError:
        return False
    return True


def list_child_units(root: Path) -> list[Path]:
    """Return immediate child directories that can stand alone as templates."""

    try:
        children = sorted(root.iterdir(), key=lambda item: item.name)
        return [
            child
            for child in children
            if child.is_dir()
            and not child.name.startswith(".")
            and child.name not in DEPENDENCY_DIRS
        ]
    except FileNotFoundError as exc:
        raise FilesystemError(Messages.ERROR_DIRECTORY_MISSING.format(path=root), root) from exc
    except NotADirectoryError as exc:
        raise FilesystemError(Messages.ERROR_NOT_A_DIRECTORY.format(path=root), root) from exc
    except OSError as exc:
        raise FilesystemError(
            Messages.ERROR_FILESYSTEM.format(path=root, reason=exc.strerror or exc), root
        ) from exc


async def copy_tree(
    source: Path,
    target: Path,
    *,
    ignore: frozenset[str] = IGNORED_NAMES,
) -> Path:
    """Copy *source* into the new directory *target*, skipping ignored names.

    Directories are walked with an explicit stack, yielding to the event loop
    once per directory.
    """

    if not source.is_dir():
        raise FilesystemError(Messages.ERROR_DIRECTORY_MISSING.format(path=source), source)
    if target.exists():
        raise FilesystemError(Messages.ERROR_DIRECTORY_EXISTS.format(path=target), target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(
            Messages.ERROR_FILESYSTEM.format(path=target.parent, reason=exc.strerror or exc),
            target.parent,
        ) from exc
    pending: list[tuple[Path, Path]] = [(source, target)]
    while pending:
        src_dir, dst_dir = pending.pop()
        try:
            dst_dir.mkdir()
            entries = list(os.scandir(src_dir))
        except FileExistsError as exc:
            raise FilesystemError(
                Messages.ERROR_DIRECTORY_EXISTS.format(path=dst_dir), dst_dir
            ) from exc
        except FileNotFoundError as exc:
            raise FilesystemError(
                Messages.ERROR_DIRECTORY_MISSING.format(path=src_dir), src_dir
            ) from exc
        except OSError as exc:
            raise FilesystemError(
                Messages.ERROR_FILESYSTEM.format(path=src_dir, reason=exc.strerror or exc),
                src_dir,
            ) from exc
        for entry in entries:
            if entry.name in ignore:
                continue
            src_path = Path(entry.path)
            dst_path = dst_dir / entry.name
            if entry.is_dir(follow_symlinks=False):
                pending.append((src_path, dst_path))
            elif entry.is_file():
                try:
                    shutil.copy2(src_path, dst_path)
                except OSError as exc:
                    raise FilesystemError(
                        Messages.ERROR_FILESYSTEM.format(path=src_path, reason=exc.strerror or exc),
                        src_path,
                    ) from exc
        await asyncio.sleep(0)
    return target


def remove_tree(path: Path) -> bool:
    """Delete *path* recursively; a missing path is not an error.

    Returns True when something was removed.
    """

    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        else:
            shutil.rmtree(path)
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise FilesystemError(
            Messages.ERROR_FILESYSTEM.format(path=path, reason=exc.strerror or exc),
            path,
        ) from exc
    logger.debug("Removed %s", path)
    return True
