"""Command line interface for Stencil."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import __version__
from .config import Context
from .errors import StencilError
from .output import build_change_grid, build_entry_grid, format_status_icon
from .services.config_service import apply_token_update, get_token
from .services.sync_service import SyncReport, SyncService, open_sync_service
from .text import Messages, Styles

T = TypeVar("T")

console = Console()

app = typer.Typer(
    help=Messages.APP_HELP,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"Stencil v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_context() -> Context:
    try:
        return Context.create()
    except StencilError as exc:
        console.print(_styled(escape(str(exc)), Styles.ERROR))
        raise typer.Exit(code=1)


def _run_with_service(
    operation: Callable[[SyncService], Awaitable[T]],
    *,
    status: str | None = None,
) -> T:
    context = _load_context()

    async def _runner() -> T:
        async with open_sync_service(context) as service:
            return await operation(service)

    try:
        if status and console.is_terminal:
            with console.status(status):
                return asyncio.run(_runner())
        return asyncio.run(_runner())
    except StencilError as exc:
        console.print(_styled(escape(str(exc)), Styles.ERROR))
        raise typer.Exit(code=1)


def _print_report(report: SyncReport) -> None:
    if report.changes:
        console.print(build_change_grid(report.changes))
    for message in report.failed:
        console.print(f"{format_status_icon(False, console)} {_styled(escape(message), Styles.ERROR)}")
    if report.failed:
        console.print(
            _styled(
                Messages.INFO_RESULT_SUMMARY.format(success=report.success, failed=len(report.failed)),
                Styles.INFO,
            )
        )
        raise typer.Exit(code=1)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help=Messages.HELP_VERBOSE),
) -> None:
    """Global Typer callback for shared options."""
    _configure_logging(verbose)


@app.command()
def add(
    sources: List[str] = typer.Argument(..., help=Messages.HELP_ADD_SOURCES),
    depth: int = typer.Option(0, "--depth", "-d", min=0, max=1, help=Messages.HELP_ADD_DEPTH),
    name: Optional[str] = typer.Option(None, "--name", "-n", help=Messages.HELP_ADD_NAME),
    replace: bool = typer.Option(False, "--replace", "-r", help=Messages.HELP_ADD_REPLACE),
) -> None:
    """Add templates from GitHub references or local directories."""
    if name is not None and (depth != 0 or len(sources) != 1):
        raise typer.BadParameter(Messages.HELP_ADD_NAME, param_hint="--name")
    report = _run_with_service(
        lambda service: service.add(sources, depth, name=name, replace=replace),
        status=Messages.INFO_DOWNLOADING,
    )
    _print_report(report)


@app.command()
def remove(
    names: List[str] = typer.Argument(..., help=Messages.HELP_REMOVE_NAMES),
) -> None:
    """Remove templates and their cached files."""
    report = _run_with_service(lambda service: service.remove(names))
    _print_report(report)


@app.command()
def create(
    source: str = typer.Argument(..., help=Messages.HELP_CREATE_SOURCE),
    destination: Optional[Path] = typer.Argument(None, help=Messages.HELP_CREATE_DESTINATION),
    overwrite: bool = typer.Option(False, "--overwrite", "-o", help=Messages.HELP_CREATE_OVERWRITE),
) -> None:
    """Create a project from a template."""
    created = _run_with_service(
        lambda service: service.create(source, destination, overwrite=overwrite),
        status=Messages.INFO_DOWNLOADING,
    )
    console.print(_styled(Messages.INFO_PROJECT_CREATED.format(path=escape(str(created))), Styles.SUCCESS))


@app.command("rename")
def rename(
    old: str = typer.Argument(..., help=Messages.HELP_RENAME_OLD),
    new: str = typer.Argument(..., help=Messages.HELP_RENAME_NEW),
) -> None:
    """Rename a stored template."""

    async def _rename(service: SyncService) -> None:
        service.rename(old, new)

    _run_with_service(_rename)
    console.print(_styled(Messages.INFO_RENAMED.format(old=escape(old), new=escape(new)), Styles.SUCCESS))


app.command("mv", hidden=True)(rename)


@app.command("list")
def list_templates(
    prune: bool = typer.Option(False, "--prune", "-p", help=Messages.HELP_LIST_PRUNE),
    show_more: bool = typer.Option(False, "--show-more", help=Messages.HELP_LIST_SHOW_MORE),
) -> None:
    """List stored templates."""

    async def _list(service: SyncService):
        return service.list_entries(prune=prune)

    entries, pruned = _run_with_service(_list)
    if pruned:
        console.print(_styled(Messages.INFO_PRUNED.format(count=len(pruned)), Styles.WARNING))
    if not entries:
        console.print(_styled(Messages.INFO_STORE_EMPTY, Styles.INFO))
        return
    console.print(build_entry_grid(entries, show_more=show_more))


@app.command()
def token(
    value: Optional[str] = typer.Argument(None, help=Messages.HELP_TOKEN_VALUE),
    clear: bool = typer.Option(False, "--clear", help=Messages.HELP_TOKEN_CLEAR),
) -> None:
    """Show or configure the GitHub token."""
    context = _load_context()
    result = apply_token_update(context, value=value, clear=clear)
    if result.token_cleared:
        console.print(_styled(Messages.INFO_TOKEN_CLEARED, Styles.SUCCESS))
        return
    if result.token_set:
        console.print(_styled(Messages.INFO_TOKEN_SAVED, Styles.SUCCESS))
        return
    current = get_token(context)
    if current:
        console.print(current, markup=False)
    else:
        console.print(_styled(Messages.INFO_TOKEN_UNSET, Styles.INFO))


def run(argv: list[str] | None = None) -> None:
    """Entry point wrapper allowing optional argument override."""
    if argv is None:
        app()
    else:
        app(args=list(argv))
