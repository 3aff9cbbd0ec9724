"""Build the immutable container model from a backend's :class:`ObjectImage`.

Two passes, mirroring how the model is consumed:

1. :func:`build_sections` collects the code-symbol start addresses of every
   section, de-duplicates and sorts them, and freezes each section.  This
   has to finish before any extent estimation, which binary-searches those
   address tuples.
2. :func:`build_symbols` creates one :class:`Symbol` per code symbol, linked
   to its frozen section (or unlinked when the section was not retained).
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from asmview.demangle import demangle as default_demangle
from asmview.formats import ObjectImage, RawSymbol
from asmview.model import Container, Section, Symbol, SymbolKind


def _code_symbols(image: ObjectImage) -> list[RawSymbol]:
    return [s for s in image.symbols if s.kind is SymbolKind.TEXT]


def build_sections(image: ObjectImage) -> dict[int, Section]:
    """Freeze the image's sections, keyed by native section index."""
    addresses: dict[int, list[int]] = {s.index: [] for s in image.sections}
    for symbol in _code_symbols(image):
        if symbol.section_index in addresses:
            addresses[symbol.section_index].append(symbol.address)

    frozen: dict[int, Section] = {}
    for raw in image.sections:
        # Later fixups at the same address replace earlier ones
        relocations = {r.address: r for r in raw.relocations}
        frozen[raw.index] = Section(
            name=raw.name,
            address=raw.address,
            data=raw.data,
            relocations=relocations,
            symbols=tuple(sorted(set(addresses[raw.index]))),
            index=raw.index,
        )
    return frozen


def build_symbols(
    image: ObjectImage,
    sections: dict[int, Section],
    demangler: Callable[[str], str | None] | None = default_demangle,
) -> dict[int, Symbol]:
    """Create the code symbols of *image*, keyed by native symbol index.

    Args:
        image: Parsed object image.
        sections: Output of :func:`build_sections` for the same image.
        demangler: Name demangler, or ``None`` to keep raw names only.
    """
    symbols: dict[int, Symbol] = {}
    for raw in _code_symbols(image):
        section = sections.get(raw.section_index) if raw.section_index is not None else None
        symbols[raw.index] = Symbol(
            name=raw.name,
            address=raw.address,
            section=section,
            size=raw.size,
            demangled=demangler(raw.name) if demangler is not None else None,
            index=raw.index,
        )
    return symbols


def build_container(
    image: ObjectImage,
    name: str,
    path: Path,
    demangler: Callable[[str], str | None] | None = default_demangle,
) -> Container:
    """Assemble a :class:`Container` from a parsed object image."""
    sections = build_sections(image)
    symbols = build_symbols(image, sections, demangler)
    return Container(
        name=name,
        path=Path(path),
        format=image.format,
        symbols=symbols,
        symbols_sorted=tuple(sorted(symbols.values(), key=lambda s: (s.name, s.address))),
        sections=tuple(sorted(sections.values(), key=lambda s: (s.address, s.index))),
        bitness=image.bitness,
    )
