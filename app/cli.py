"""Clean up orphaned temporary files older than the given number of days."""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator

import typer

from app.core.config import get_settings
from app.dependencies import build_storage
from orphan_sweeper import RetentionSweeper, SweepResult
from orphan_sweeper.exceptions import ConfigurationError
from orphan_sweeper.utils import format_bytes

logger = logging.getLogger(__name__)

app = typer.Typer(help=__doc__, add_completion=False)


@contextmanager
def _stop_on_signals(stop_event: threading.Event) -> Iterator[None]:
    """Set ``stop_event`` on SIGINT/SIGTERM while the sweep runs."""

    def _handle(signum, frame) -> None:
        logger.warning("Received signal %s, stopping after the current file", signum)
        stop_event.set()

    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {sig: signal.signal(sig, _handle) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def render(result: SweepResult) -> None:
    action = "Would delete" if result.dry_run else "Deleted"
    if result.root_error:
        typer.secho(f"Error listing directories: {result.root_error}", fg=typer.colors.RED, err=True)
    for failure in result.directory_failures:
        typer.secho(
            f"Error processing directory {failure.directory}: {failure.error}", fg=typer.colors.RED, err=True
        )
    for swept in result.files:
        typer.echo(f"{action}: {swept.path} ({format_bytes(swept.size_bytes)})")
    for failure in result.file_failures:
        typer.secho(f"Error deleting {failure.path}: {failure.error}", fg=typer.colors.RED, err=True)
    for directory in result.removed_directories:
        typer.echo(f"Deleted empty directory: {directory}")
    if result.cancelled:
        typer.secho("Cleanup interrupted; remaining files will be handled on the next run.", fg=typer.colors.YELLOW)

    if result.file_count > 0:
        typer.secho(
            f"{action} {result.file_count} file(s) totaling {format_bytes(result.total_bytes)}",
            fg=typer.colors.GREEN,
        )
    else:
        typer.secho("No orphaned files found to clean up.", fg=typer.colors.GREEN)


@app.command()
def cleanup(
    days: int = typer.Option(1, "--days", help="Number of days to keep temporary files."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deleted without actually deleting."),
) -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if days < 0:
        raise typer.BadParameter("must be zero or more", param_hint="--days")

    typer.secho(f"Cleaning up temporary files older than {days} day(s)...", fg=typer.colors.GREEN)
    if dry_run:
        typer.secho("DRY RUN MODE - No files will be deleted", fg=typer.colors.YELLOW)

    try:
        storage = build_storage(settings)
    except ConfigurationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    stop_event = threading.Event()
    sweeper = RetentionSweeper(storage, tmp_prefix=settings.tmp_prefix)
    with _stop_on_signals(stop_event):
        result = sweeper.run(days=days, dry_run=dry_run, stop_event=stop_event)
    render(result)


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
