"""Main Typer application — imports and registers all CLI commands.

Entry point: ``floppyforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from floppyforge.cli.commands.build import build_cmd
from floppyforge.cli.commands.inspect_cmd import cat_cmd, formats_cmd, ls_cmd
from floppyforge.config import settings

app = typer.Typer(
    name="floppyforge",
    help="Floppyforge: stage files and content onto a FAT12 floppy image.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="build", help="Build a floppy image from files, directories and content.")(build_cmd)
app.command(name="ls", help="List the files inside a floppy image.")(ls_cmd)
app.command(name="cat", help="Print one file from a floppy image.")(cat_cmd)
app.command(name="formats", help="List supported floppy formats.")(formats_cmd)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging for every subcommand."""
    level = logging.DEBUG if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
