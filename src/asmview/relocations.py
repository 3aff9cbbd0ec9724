"""Relocation lookup for symbolic disassembly.

A section maps fixup addresses to relocation records.  For one decoded
instruction, every byte address it spans is checked in ascending order and
the first fixup found is the one associated with the instruction.  Only
symbol targets resolve, and only to symbols that are in the container's
code-symbol table; everything else means "no symbolic substitution".
"""

from __future__ import annotations

from asmview.model import Relocation, Section, Symbol, TargetKind


def find_relocation(section: Section | None, address: int, length: int) -> Relocation | None:
    """Return the first fixup in ``[address, address + length)``, if any."""
    if section is None or not section.relocations:
        return None
    for offset in range(length):
        reloc = section.relocations.get(address + offset)
        if reloc is not None:
            return reloc
    return None


def resolve_target(reloc: Relocation, symbols: dict[int, Symbol]) -> Symbol | None:
    """Resolve a relocation target against a container's symbol table."""
    if reloc.target.kind is not TargetKind.SYMBOL or reloc.target.index is None:
        return None
    return symbols.get(reloc.target.index)


def resolve_relocation(
    section: Section | None,
    address: int,
    length: int,
    symbols: dict[int, Symbol],
) -> tuple[int, Symbol | None] | None:
    """Find and resolve the relocation covering one instruction.

    Returns:
        ``None`` when no fixup overlaps the instruction, otherwise the fixup
        address and the resolved symbol (``None`` if the target does not
        resolve to a known code symbol).
    """
    reloc = find_relocation(section, address, length)
    if reloc is None:
        return None
    return reloc.address, resolve_target(reloc, symbols)
