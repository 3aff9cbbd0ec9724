"""Configuration loader for asmview.

Reads ``asmview.toml`` from the nearest enclosing directory (searching
upward from the working directory, the way ``git`` finds ``.git/``).  A
missing file is not an error: every setting has a default.

Usage::

    from asmview.config import load_config

    cfg = load_config()
    options = cfg.decoder_options()
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]

from asmview.disasm import DecoderOptions

CONFIG_NAME = "asmview.toml"
VALID_BITNESS = (16, 32, 64)


@dataclass
class AsmviewConfig:
    """Parsed configuration.  ``root`` is ``None`` when no file was found."""

    root: Optional[Path] = None
    bitness: Optional[int] = None
    first_operand_column: int = 10
    space_after_operand_separator: bool = True
    demangle: bool = True
    skip_unreadable: bool = False

    def decoder_options(self) -> DecoderOptions:
        return DecoderOptions(
            bitness=self.bitness,
            first_operand_column=self.first_operand_column,
            space_after_operand_separator=self.space_after_operand_separator,
        )


def _find_root(start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from *start* (or cwd) to the first directory holding asmview.toml."""
    candidate = (start or Path.cwd()).resolve()
    while True:
        if (candidate / CONFIG_NAME).is_file():
            return candidate
        if candidate == candidate.parent:
            return None
        candidate = candidate.parent


def _table(raw: dict, name: str) -> dict:
    value = raw.get(name, {})
    if not isinstance(value, dict):
        raise ValueError(f"[{name}] must be a table in {CONFIG_NAME}")
    return value


def _get_bool(table: dict, section: str, key: str, default: bool) -> bool:
    value = table.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def _get_int(table: dict, section: str, key: str, default: Any) -> Any:
    if key not in table:
        return default
    value = table[key]
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
    return value


def parse_config(raw: dict, root: Optional[Path] = None) -> AsmviewConfig:
    """Validate a decoded TOML document.

    Raises:
        ValueError: If a setting has the wrong type or an unsupported value.
    """
    decoder = _table(raw, "decoder")
    symbols = _table(raw, "symbols")
    loader = _table(raw, "loader")

    bitness = _get_int(decoder, "decoder", "bitness", None)
    if bitness is not None and bitness not in VALID_BITNESS:
        raise ValueError(f"decoder.bitness must be one of {VALID_BITNESS}, got {bitness}")
    column = _get_int(decoder, "decoder", "first_operand_column", 10)
    if column < 0:
        raise ValueError(f"decoder.first_operand_column must be >= 0, got {column}")

    return AsmviewConfig(
        root=root,
        bitness=bitness,
        first_operand_column=column,
        space_after_operand_separator=_get_bool(
            decoder, "decoder", "space_after_operand_separator", True
        ),
        demangle=_get_bool(symbols, "symbols", "demangle", True),
        skip_unreadable=_get_bool(loader, "loader", "skip_unreadable", False),
    )


def load_config(root: Optional[Path] = None) -> AsmviewConfig:
    """Load asmview.toml.

    Args:
        root: Directory to start searching from.  Defaults to the cwd.
    """
    found = _find_root(root)
    if found is None:
        return AsmviewConfig()
    with open(found / CONFIG_NAME, "rb") as f:
        raw = tomllib.load(f)
    return parse_config(raw, root=found)
