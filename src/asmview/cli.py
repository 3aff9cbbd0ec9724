"""Shared CLI utilities for asmview commands.

Provides the common Typer options, config/loading helpers and standardised
output / error helpers so that every command gets consistent
``--skip-unreadable`` / ``--verbose`` handling, error reporting and JSON
output without boilerplate.

Usage in a command module::

    import typer
    from asmview.cli import FilesArgument, VerboseOption, error_exit, load_containers

    app = typer.Typer()

    @app.callback(invoke_without_command=True)
    def main(files: list[Path] = FilesArgument, verbose: bool = VerboseOption) -> None:
        cfg, store = load_containers(files, verbose=verbose)
        ...
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, NoReturn

import lief
import typer
from rich.console import Console
from rich.logging import RichHandler

from asmview.config import AsmviewConfig, load_config
from asmview.demangle import demangle
from asmview.loader import ContainerStore, open_files
from asmview.model import Container

FilesArgument: list[Path] = typer.Argument(..., help="Object files or static libraries")

ObjectOption: str | None = typer.Option(
    None,
    "--object",
    "-o",
    help="Only look at the container (archive member) with this name.",
)

SkipUnreadableOption: bool | None = typer.Option(
    None,
    "--skip-unreadable/--no-skip-unreadable",
    help="Skip files that cannot be read instead of failing (default from asmview.toml).",
)

VerboseOption: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging.")


# ---------------------------------------------------------------------------
# Standardised output helpers
# ---------------------------------------------------------------------------

_err_console = Console(stderr=True)


def error_exit(msg: str, *, json_mode: bool = False, code: int = 1) -> NoReturn:
    """Print *msg* as an error and ``raise typer.Exit(code)``."""
    if json_mode:
        print(json.dumps({"error": msg}, indent=2))
    else:
        _err_console.print(f"[red bold]error:[/red bold] {msg}")
    raise typer.Exit(code=code)


def json_print(data: dict[str, Any] | list[Any]) -> None:
    """Print *data* as pretty-printed JSON to stdout."""
    print(json.dumps(data, indent=2))


def parse_va(va_str: str) -> int | None:
    """Parse a ``0x``-prefixed hex address; ``None`` for anything else."""
    text = va_str.strip()
    if not text.lower().startswith("0x"):
        return None
    try:
        return int(text, 16)
    except ValueError:
        return None


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich; LIEF's own logger stays quiet unless verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=_err_console, show_path=False)],
        force=True,
    )
    if verbose:
        lief.logging.enable()
    else:
        lief.logging.disable()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def get_config(*, json_mode: bool = False) -> AsmviewConfig:
    """Load asmview.toml, exiting with a readable message when it is invalid."""
    try:
        return load_config()
    except ValueError as exc:
        error_exit(f"Invalid asmview.toml: {exc}", json_mode=json_mode)


def load_containers(
    files: list[Path],
    *,
    skip_unreadable: bool | None = None,
    verbose: bool = False,
    json_mode: bool = False,
) -> tuple[AsmviewConfig, ContainerStore]:
    """Set up logging, load the config and open every file into a fresh store."""
    setup_logging(verbose)
    cfg = get_config(json_mode=json_mode)
    if skip_unreadable is None:
        skip_unreadable = cfg.skip_unreadable

    store = ContainerStore()
    try:
        open_files(
            store,
            files,
            skip_unreadable=skip_unreadable,
            demangler=demangle if cfg.demangle else None,
        )
    except OSError as exc:
        error_exit(f"Cannot read {exc.filename or exc}: {exc.strerror or exc}", json_mode=json_mode)
    return cfg, store


def select_containers(
    store: ContainerStore, object_name: str | None, *, json_mode: bool = False
) -> list[Container]:
    """All containers in *store*, or just the one named by ``--object``."""
    if object_name is None:
        return list(store)
    container = store.find(object_name)
    if container is None:
        error_exit(f"No object named {object_name!r}", json_mode=json_mode)
    return [container]
