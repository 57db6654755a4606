"""``floppyforge ls`` / ``cat`` / ``formats`` — inspect images and formats."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from floppyforge.core.errors import IOFailure
from floppyforge.core.fat12 import GEOMETRIES, read_image, read_label

console = Console()


def _load(image: Path) -> dict[str, bytes]:
    try:
        return read_image(image)
    except (OSError, IOFailure) as exc:
        console.print(f"[red]Cannot read image:[/red] {exc}")
        raise typer.Exit(code=1)


def ls_cmd(
    image: Path = typer.Argument(..., help="Floppy image to list."),
) -> None:
    """List every file inside IMAGE."""
    files = _load(image)
    table = Table(title=f"{image.name} ({read_label(image) or 'no label'})")
    table.add_column("Path", style="cyan")
    table.add_column("Size", justify="right", style="green")
    for path in sorted(files):
        table.add_row(path, str(len(files[path])))
    console.print(table)
    console.print(f"[dim]{len(files)} file(s), {sum(map(len, files.values()))} bytes[/dim]")


def cat_cmd(
    image: Path = typer.Argument(..., help="Floppy image to read from."),
    path: str = typer.Argument(..., help="Path of the file inside the image."),
) -> None:
    """Write the bytes of PATH inside IMAGE to stdout."""
    files = _load(image)
    wanted = path.strip("/").casefold()
    for name, data in files.items():
        if name.casefold() == wanted:
            typer.echo(data, nl=False)
            return
    console.print(f"[red]Not found in image:[/red] {path}")
    raise typer.Exit(code=1)


def formats_cmd() -> None:
    """List the floppy formats the encoder supports."""
    table = Table(title="Floppy formats")
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Capacity", justify="right", style="green")
    table.add_column("Root entries", justify="right")
    for geometry in GEOMETRIES.values():
        table.add_row(
            geometry.name,
            str(geometry.image_size),
            str(geometry.capacity),
            str(geometry.root_entries),
        )
    console.print(table)
