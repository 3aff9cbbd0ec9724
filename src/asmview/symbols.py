"""List the code symbols of every loaded object.

Usage:
    asmview symbols libfoo.a
    asmview symbols libfoo.a --object foo.o --json
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from asmview.cli import (
    FilesArgument,
    ObjectOption,
    SkipUnreadableOption,
    VerboseOption,
    json_print,
    load_containers,
    select_containers,
)
from asmview.model import Symbol

_EPILOG = """\
[bold]Examples:[/bold]

asmview symbols foo.o                      All code symbols, sorted by name

asmview symbols libfoo.a -o bar.o          Symbols of a single archive member

asmview symbols foo.o --json               Machine-readable JSON output

[dim]The estimated size runs from a symbol to the next code symbol in the
same section, or to the end of the section.  "-" means no estimate.[/dim]"""

app = typer.Typer(
    help="List code symbols with estimated sizes.",
    rich_markup_mode="rich",
    epilog=_EPILOG,
)


def symbol_summary(symbol: Symbol) -> dict:
    """JSON-ready description of one symbol."""
    return {
        "name": symbol.name,
        "demangled": symbol.demangled,
        "address": f"0x{symbol.address:x}",
        "size": symbol.size,
        "estimated_size": symbol.estimate_size(),
        "section": symbol.section.name if symbol.section is not None else None,
    }


@app.callback(invoke_without_command=True)
def main(
    files: list[Path] = FilesArgument,
    object_name: str | None = ObjectOption,
    skip_unreadable: bool | None = SkipUnreadableOption,
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    verbose: bool = VerboseOption,
) -> None:
    """Print the name-sorted code symbols of each object."""
    _, store = load_containers(
        files, skip_unreadable=skip_unreadable, verbose=verbose, json_mode=json_output
    )
    containers = select_containers(store, object_name, json_mode=json_output)

    if json_output:
        json_print(
            {
                "objects": [
                    {
                        "name": c.name,
                        "symbols": [symbol_summary(s) for s in c.symbols_sorted],
                    }
                    for c in containers
                ]
            }
        )
        return

    console = Console()
    for container in containers:
        tbl = Table(
            title=f"[bold]{container.name}[/bold]",
            show_header=True,
            header_style="bold",
            box=None,
            padding=(0, 2),
        )
        tbl.add_column("Address", style="blue")
        tbl.add_column("Size", justify="right")
        tbl.add_column("Est.", justify="right")
        tbl.add_column("Section", style="dim")
        tbl.add_column("Name")
        for symbol in container.symbols_sorted:
            estimate = symbol.estimate_size()
            tbl.add_row(
                f"{symbol.address:016x}",
                str(symbol.size),
                "-" if estimate is None else str(estimate),
                symbol.section.name if symbol.section is not None else "-",
                symbol.display_name,
            )
        console.print(tbl)
