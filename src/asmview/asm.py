"""Disassemble one symbol of an object file or static library.

Usage:
    asmview asm foo.o main
    asmview asm libfoo.a _ZN3foo3barEv --object foo.o
    asmview asm foo.o 0x40 --json
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.text import Text

from asmview.cli import (
    ObjectOption,
    SkipUnreadableOption,
    VerboseOption,
    error_exit,
    json_print,
    load_containers,
    parse_va,
    select_containers,
)
from asmview.disasm import Assembly, Instruction, TokenKind, disassemble
from asmview.model import Container, Symbol

_EPILOG = """\
[bold]Examples:[/bold]

asmview asm foo.o main                     Disassemble a symbol by name

asmview asm foo.o "foo::bar()"             Demangled names work too

asmview asm foo.o 0x40                     Symbol starting at an address

asmview asm libfoo.a f -o foo.o            Pick one archive member

asmview asm foo.o main --no-bytes          Hide the raw instruction bytes

asmview asm foo.o main --json              Machine-readable JSON output

[dim]Relocated operands are shown as the name of the symbol they refer to.
Decoder settings come from asmview.toml ([decoder]).[/dim]"""

app = typer.Typer(
    help="Disassemble a symbol.",
    rich_markup_mode="rich",
    epilog=_EPILOG,
)

TOKEN_STYLES: dict[TokenKind, str] = {
    TokenKind.MNEMONIC: "bold purple",
    TokenKind.PREFIX: "bold purple",
    TokenKind.REGISTER: "green",
    TokenKind.NUMBER: "blue",
    TokenKind.SYMBOL: "underline",
}
_DEFAULT_STYLE = "grey50"


def find_symbol(containers: list[Container], query: str) -> tuple[Container, Symbol] | None:
    """Look *query* up by raw name, demangled name, then as a ``0x`` address."""
    for container in containers:
        symbol = container.symbol_named(query)
        if symbol is not None:
            return container, symbol
    address = parse_va(query)
    if address is None:
        return None
    for container in containers:
        found = container.symbol_at(address)
        if found:
            return container, found[0]
    return None


def render_instruction(insn: Instruction, show_bytes: bool = True, bytes_width: int = 0) -> Text:
    """Colourised one-line rendering of *insn*."""
    line = Text()
    line.append(f"{insn.address:016x}", style="dim")
    line.append("  ")
    if show_bytes:
        line.append(insn.bytes.hex(" ").ljust(bytes_width), style="dim")
        line.append("  ")
    for text, kind in insn.tokens:
        line.append(text, style=TOKEN_STYLES.get(kind, _DEFAULT_STYLE))
    if insn.relocation is not None:
        line.append(f"  ; {insn.relocation.display_name}", style="dim")
    return line


def assembly_to_dict(container: Container, symbol: Symbol, asm: Assembly | None) -> dict:
    data = {
        "object": container.name,
        "symbol": symbol.name,
        "demangled": symbol.demangled,
        "address": f"0x{symbol.address:x}",
        "size": symbol.estimate_size(),
        "instructions": None,
    }
    if asm is not None:
        data["instructions"] = [
            {
                "address": f"0x{insn.address:x}",
                "bytes": insn.bytes.hex(),
                "text": insn.text,
                "tokens": [[text, kind.value] for text, kind in insn.tokens],
                "relocation": insn.relocation.display_name if insn.relocation else None,
            }
            for insn in asm
        ]
    return data


@app.callback(invoke_without_command=True)
def main(
    file: Path = typer.Argument(..., help="Object file or static library"),
    symbol_name: str = typer.Argument(..., metavar="SYMBOL", help="Symbol name or 0x address"),
    object_name: str | None = ObjectOption,
    show_bytes: bool = typer.Option(True, "--bytes/--no-bytes", help="Show raw instruction bytes"),
    skip_unreadable: bool | None = SkipUnreadableOption,
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    verbose: bool = VerboseOption,
) -> None:
    """Disassemble the estimated extent of one code symbol.

    The symbol is searched by raw name, then by demangled name, then (for
    ``0x``-prefixed input) by start address, in load order across every
    object in *file*.  When its bytes cannot be determined, or decode to no
    instructions, the command prints ``Assembly unavailable``.
    """
    cfg, store = load_containers(
        [file], skip_unreadable=skip_unreadable, verbose=verbose, json_mode=json_output
    )
    containers = select_containers(store, object_name, json_mode=json_output)

    found = find_symbol(containers, symbol_name)
    if found is None:
        error_exit(f"Symbol not found: {symbol_name}", json_mode=json_output)
    container, symbol = found

    try:
        asm = disassemble(symbol, container, cfg.decoder_options())
    except ValueError as exc:
        error_exit(str(exc), json_mode=json_output)

    if json_output:
        json_print(assembly_to_dict(container, symbol, asm))
        return

    console = Console(highlight=False)
    size = symbol.estimate_size()
    header = Text()
    header.append(symbol.display_name, style="bold")
    header.append(f"  {container.name}  0x{symbol.address:x}", style="dim")
    if size is not None:
        header.append(f"  {size} bytes", style="dim")
    console.print(header)

    if not asm:
        console.print("Assembly unavailable")
        return

    width = max((len(insn.bytes) * 3 - 1 for insn in asm), default=0)
    for insn in asm:
        console.print(render_instruction(insn, show_bytes, width), soft_wrap=True)
