"""List the containers found in object files and static libraries.

Usage:
    asmview objects libfoo.a bar.o
    asmview objects libfoo.a --json
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from asmview.cli import (
    FilesArgument,
    SkipUnreadableOption,
    VerboseOption,
    json_print,
    load_containers,
)
from asmview.model import Container

_EPILOG = """\
[bold]Examples:[/bold]

asmview objects libfoo.a                   One row per archive member

asmview objects a.o b.o --json             Machine-readable JSON output

asmview objects *.o --skip-unreadable      Ignore files that cannot be read

[dim]Archive members and bare object files are both listed.  Members that
are not supported object files are skipped silently (see -v).[/dim]"""

app = typer.Typer(
    help="List the objects found in files.",
    rich_markup_mode="rich",
    epilog=_EPILOG,
)


def container_summary(container: Container) -> dict:
    """JSON-ready description of one container."""
    return {
        "name": container.name,
        "path": str(container.path),
        "format": container.format.value,
        "bitness": container.bitness,
        "symbols": len(container.symbols),
        "sections": len(container.sections),
    }


@app.callback(invoke_without_command=True)
def main(
    files: list[Path] = FilesArgument,
    skip_unreadable: bool | None = SkipUnreadableOption,
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    verbose: bool = VerboseOption,
) -> None:
    """Load every file and print one row per parsed object."""
    _, store = load_containers(
        files, skip_unreadable=skip_unreadable, verbose=verbose, json_mode=json_output
    )

    if json_output:
        json_print({"objects": [container_summary(c) for c in store]})
        return

    console = Console()
    if not len(store):
        console.print("[dim]No objects found.[/dim]")
        return

    tbl = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    tbl.add_column("Object")
    tbl.add_column("Format")
    tbl.add_column("Bits", justify="right")
    tbl.add_column("Symbols", justify="right")
    tbl.add_column("Sections", justify="right")
    for container in store:
        tbl.add_row(
            container.name,
            container.format.value,
            str(container.bitness),
            str(len(container.symbols)),
            str(len(container.sections)),
        )
    console.print(tbl)
