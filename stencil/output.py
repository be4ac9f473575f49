"""Helpers for formatting CLI output safely across terminals."""

from __future__ import annotations

import sys
from typing import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .store import CacheEntry, Change, ChangeKind
from .text import Styles

_CHANGE_SYMBOLS = {
    ChangeKind.added: ("+", Styles.ADDED),
    ChangeKind.removed: ("-", Styles.REMOVED),
    ChangeKind.updated: ("~", Styles.UPDATED),
}


def _encoding_supports(text: str, encoding: str | None) -> bool:
    if not encoding:
        return False
    try:
        text.encode(encoding)
    except Exception:
        return False
    return True


def supports_unicode_output(console: Console | None = None) -> bool:
    sample = "✓✗"
    if console is not None and _encoding_supports(sample, console.encoding):
        return True
    return _encoding_supports(sample, sys.stdout.encoding)


def format_status_icon(passed: bool, console: Console | None = None) -> str:
    if supports_unicode_output(console):
        return "[green]✓[/green]" if passed else "[red]✗[/red]"
    return "[green]OK[/green]" if passed else "[red]X[/red]"


def format_change_label(change: Change) -> str:
    symbol, style = _CHANGE_SYMBOLS[change.kind]
    label = escape(change.name)
    if change.detail == "old":
        label = f"{label} [dim](old)[/dim]"
    return f"[{style}]{symbol}[/{style}] {label}"


def build_change_grid(changes: Sequence[Change]) -> Table:
    grid = Table.grid(padding=(0, 4))
    grid.add_column(no_wrap=True)
    grid.add_column(overflow="fold")
    for change in changes:
        detail = "" if change.detail in (None, "old") else escape(change.detail)
        grid.add_row(format_change_label(change), detail)
    return grid


def build_entry_grid(entries: Sequence[tuple[str, CacheEntry]], *, show_more: bool = False) -> Table:
    grid = Table.grid(padding=(0, 4))
    grid.add_column(no_wrap=True, style=Styles.SUCCESS)
    grid.add_column(overflow="fold")
    for name, entry in entries:
        if not show_more:
            grid.add_row(escape(name), escape(str(entry.local_path)))
            continue
        lines = [
            f"input: {escape(entry.source_input)}",
            f"url: {escape(entry.canonical_url)}",
        ]
        if entry.commit:
            lines.append(f"commit: {escape(entry.commit)}")
        lines.append(f"path: {escape(str(entry.local_path))}")
        grid.add_row(escape(name), "\n".join(lines))
    return grid
