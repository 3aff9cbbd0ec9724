"""main.py – Umbrella CLI entry point for asmview.

Lazily imports and registers the subcommand typer apps so that a broken
optional import only disables the affected command.

Every command module exposes a Typer ``app`` (for its epilog) and a
``main`` callback, which is registered here as a flat ``app.command()``
rather than through ``add_typer()``.
"""

import importlib
import sys
from collections.abc import Callable

import typer

app = typer.Typer(
    help="Symbol-level x86 disassembly viewer for object files and static libraries.",
    rich_markup_mode="rich",
    epilog="""\
[bold]Typical workflow:[/bold]
  asmview objects libfoo.a        List the objects in a library
  asmview symbols libfoo.a        List code symbols with estimated sizes
  asmview asm libfoo.a main       Disassemble one symbol

[dim]Decoder defaults can be set in asmview.toml.
Run 'asmview <cmd> --help' for details.[/dim]""",
)

_SINGLE_COMMANDS: list[tuple[str, str, str]] = [
    ("objects", "asmview.objects", "List the objects found in files."),
    ("symbols", "asmview.symbols", "List code symbols with estimated sizes."),
    ("asm", "asmview.asm", "Disassemble a symbol."),
]


def _make_stub_cmd(mod_name: str, err: ImportError) -> Callable[[], None]:
    """Create a stub command function that reports the failed import."""

    def _stub() -> None:
        print(f"Error: could not load '{mod_name}': {err}", file=sys.stderr)
        raise typer.Exit(code=1)

    return _stub


for _name, _module, _help in _SINGLE_COMMANDS:
    try:
        _mod = importlib.import_module(_module)
        _epilog = getattr(_mod.app.info, "epilog", None)
        if not isinstance(_epilog, str):
            _epilog = None
        app.command(name=_name, help=_help, epilog=_epilog)(_mod.main)
    except ImportError as _exc:
        app.command(name=_name, help=f"[unavailable] {_help}")(_make_stub_cmd(_module, _exc))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
