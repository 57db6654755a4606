"""``floppyforge build`` — run the floppy step once and keep its image.

The step runs exactly as it would inside a host pipeline; the produced
image is copied to ``--output`` before the step's temporary files are
cleaned up.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from floppyforge.core.runner import StepRunner
from floppyforge.models.config import CollisionPolicy, FloppyConfig
from floppyforge.steps.create_floppy import CreateFloppyStep

console = Console()


def parse_content_option(raw: str) -> tuple[str, str | bytes]:
    """Split ``DEST=TEXT`` or ``DEST=@PATH`` into an image path and payload."""
    dest, sep, value = raw.partition("=")
    if not sep or not dest:
        raise typer.BadParameter(f"expected DEST=TEXT or DEST=@PATH, got {raw!r}")
    if value.startswith("@"):
        source = Path(value[1:]).expanduser()
        try:
            return dest, source.read_bytes()
        except OSError as exc:
            raise typer.BadParameter(f"cannot read {source}: {exc}") from exc
    return dest, value


def build_cmd(
    output: Path = typer.Option(
        ...,
        "--output",
        "-o",
        help="Where to write the finished image.",
    ),
    files: Optional[List[str]] = typer.Option(
        None,
        "--file",
        "-f",
        help="File glob; matches are copied flatly to the image root. Repeatable.",
    ),
    dirs: Optional[List[str]] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Directory glob; matched trees keep their hierarchy. Repeatable.",
    ),
    content: Optional[List[str]] = typer.Option(
        None,
        "--content",
        "-c",
        help="Inline file as DEST=TEXT or DEST=@PATH. Repeatable.",
    ),
    label: Optional[str] = typer.Option(None, "--label", "-l", help="Volume label."),
    image_format: Optional[str] = typer.Option(
        None, "--format", help="Floppy format (see `floppyforge formats`)."
    ),
    last_wins: bool = typer.Option(
        False,
        "--last-wins",
        help="Let later sources replace earlier ones at the same image path.",
    ),
    strict_globs: bool = typer.Option(
        False,
        "--strict-globs",
        help="Fail when a wildcard file pattern matches nothing.",
    ),
) -> None:
    """Build a floppy image and write it to OUTPUT."""
    try:
        config = FloppyConfig(
            files=files or [],
            directories=dirs or [],
            content=dict(parse_content_option(c) for c in content or []),
            label=label,
            image_format=image_format,
            collision_policy=CollisionPolicy.LAST_WINS if last_wins else None,
            strict_globs=True if strict_globs else None,
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(code=2)

    step = CreateFloppyStep(config)
    runner = StepRunner([step])
    state = runner.run(cleanup=False)
    try:
        if "error" in state:
            console.print(f"[red]Floppy creation failed:[/red] {state['error']}")
            raise typer.Exit(code=1)
        if state.get("cancelled"):
            console.print("[yellow]Floppy creation cancelled.[/yellow]")
            raise typer.Exit(code=1)

        output.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(state["floppy_path"], output)
        added = state["floppy_files_added"]
        console.print(
            Panel(
                "\n".join([
                    "[bold green]Floppy image created![/bold green]",
                    "",
                    f"[bold]Image:[/bold]    {output}",
                    f"[bold]Format:[/bold]   {step.geometry.name}",
                    f"[bold]Label:[/bold]    {step.label}",
                    f"[bold]Sources:[/bold]  {len(added)}",
                    f"[bold]Manifest:[/bold] {state['floppy_manifest_hash']}",
                ]),
                title="[bold]Floppyforge[/bold]",
                border_style="green",
                padding=(1, 2),
            )
        )
    finally:
        runner.cleanup(state)
