"""Normalized container / section / symbol model.

Every format backend is reduced to these types by :mod:`asmview.builder`.
All of them are immutable after construction: a :class:`Section` is shared
by every :class:`Symbol` that lives in it, and a :class:`Container` owns its
sections and symbols exclusively.

Usage::

    from asmview.model import Container

    for symbol in container.symbols_sorted:
        print(symbol.display_name, symbol.estimate_size())
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

from asmview import extent

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class BinaryFormat(str, enum.Enum):
    """Detected container format tag."""

    ELF = "elf"
    MACHO = "macho"
    COFF = "coff"


class SymbolKind(enum.Enum):
    """Coarse classification of a symbol-table entry.

    Only ``TEXT`` symbols make it into the model.
    """

    NULL = "null"
    TEXT = "text"
    DATA = "data"
    SECTION = "section"
    FILE = "file"
    LABEL = "label"
    UNKNOWN = "unknown"


class TargetKind(str, enum.Enum):
    """What a relocation points at."""

    SYMBOL = "symbol"
    SECTION = "section"
    ABSOLUTE = "absolute"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Relocations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RelocationTarget:
    """Target of a fixup: a kind plus the format's native index (if any)."""

    kind: TargetKind
    index: int | None = None

    @classmethod
    def symbol(cls, index: int) -> RelocationTarget:
        return cls(TargetKind.SYMBOL, index)

    @classmethod
    def section(cls, index: int) -> RelocationTarget:
        return cls(TargetKind.SECTION, index)


ABSOLUTE_TARGET = RelocationTarget(TargetKind.ABSOLUTE)
UNKNOWN_TARGET = RelocationTarget(TargetKind.UNKNOWN)


@dataclass(frozen=True)
class Relocation:
    """A fixup record.

    ``address`` is absolute (section base + fixup offset), so it can be
    compared directly with instruction addresses.
    """

    address: int
    target: RelocationTarget
    type: int = 0  # raw format-specific relocation type
    addend: int = 0


# ---------------------------------------------------------------------------
# Sections and symbols
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Section:
    """A contiguous loaded region of a container."""

    name: str
    address: int
    data: bytes
    relocations: dict[int, Relocation] = field(default_factory=dict)
    # Strictly ascending start addresses of the code symbols in this section
    symbols: tuple[int, ...] = ()
    index: int = 0  # native section index

    @property
    def end_address(self) -> int | None:
        """``address + len(data)``, or ``None`` if that overflows 64 bits."""
        return extent.checked_add(self.address, len(self.data))

    def contains(self, address: int) -> bool:
        end = self.end_address
        return end is not None and self.address <= address < end


@dataclass(frozen=True, eq=False)
class Symbol:
    """One executable-code symbol.

    Equality is identity: two symbols with the same name and address in
    different containers are different symbols.
    """

    name: str
    address: int
    section: Section | None = None
    size: int = 0  # declared size, frequently zero for object files
    demangled: str | None = None
    index: int = 0  # native symbol-table index

    @property
    def display_name(self) -> str:
        return self.demangled or self.name

    def estimate_size(self) -> int | None:
        """Byte extent up to the next code symbol or the end of the section."""
        return extent.estimate_size(self)

    def data(self) -> bytes | None:
        """The bytes covered by :meth:`estimate_size`, or ``None``."""
        return extent.symbol_data(self)


@dataclass(frozen=True, eq=False)
class Container:
    """One successfully parsed object file (bare or an archive member)."""

    name: str
    path: Path
    format: BinaryFormat
    symbols: dict[int, Symbol]
    symbols_sorted: tuple[Symbol, ...]
    sections: tuple[Section, ...]
    bitness: int = 64

    def symbol_named(self, name: str) -> Symbol | None:
        """Return the first symbol whose raw or demangled name is *name*."""
        for symbol in self.symbols_sorted:
            if symbol.name == name:
                return symbol
        for symbol in self.symbols_sorted:
            if symbol.demangled == name:
                return symbol
        return None

    def symbol_at(self, address: int) -> list[Symbol]:
        """All code symbols starting at *address*, in name order."""
        return [s for s in self.symbols_sorted if s.address == address]
