"""Mach-O object reader backed by LIEF.

LIEF returns a ``FatBinary`` even for thin files; the first slice is used,
as elsewhere in this codebase.  Mach-O sections are numbered 1..N in load
command order, which is what symbol ``n_sect`` fields refer to.
"""

from __future__ import annotations

import io

import lief

from asmview.errors import ObjectFormatError
from asmview.formats import ObjectImage, RawSection, RawSymbol, lief_name
from asmview.model import (
    ABSOLUTE_TARGET,
    BinaryFormat,
    Relocation,
    RelocationTarget,
    SymbolKind,
    TargetKind,
    UNKNOWN_TARGET,
)

N_STAB = 0xE0
N_TYPE = 0x0E
N_SECT = 0x0E

S_ATTR_PURE_INSTRUCTIONS = 0x80000000
S_ATTR_SOME_INSTRUCTIONS = 0x00000400

_MACHO_CPU_BITNESS: dict[lief.MachO.Header.CPU_TYPE, int] = {
    lief.MachO.Header.CPU_TYPE.X86: 32,
    lief.MachO.Header.CPU_TYPE.X86_64: 64,
}


def _is_code_section(section: lief.MachO.Section) -> bool:
    if lief_name(section.segment_name) == "__TEXT" and lief_name(section.name) == "__text":
        return True
    try:
        flags = int(section.flags)
    except (TypeError, ValueError):
        return False
    return bool(flags & (S_ATTR_PURE_INSTRUCTIONS | S_ATTR_SOME_INSTRUCTIONS))


def _n_type(symbol: lief.MachO.Symbol) -> int:
    raw = getattr(symbol, "raw_type", None)
    if raw is None:
        raw = int(symbol.type)
    return raw


def read_macho(data: bytes) -> ObjectImage:
    """Parse a Mach-O object file (thin, or the first slice of a fat file).

    Raises:
        ObjectFormatError: If LIEF rejects the buffer.
    """
    try:
        fat = lief.MachO.parse(io.BytesIO(data))
    except (RuntimeError, ValueError, TypeError) as exc:
        raise ObjectFormatError(f"LIEF failed to parse Mach-O: {exc}") from exc
    if fat is None:
        raise ObjectFormatError("LIEF failed to parse Mach-O")
    binary = fat.at(0) if isinstance(fat, lief.MachO.FatBinary) else fat
    if binary is None:
        raise ObjectFormatError("Mach-O file has no slices")

    image = ObjectImage(
        format=BinaryFormat.MACHO,
        bitness=_MACHO_CPU_BITNESS.get(binary.header.cpu_type, 64),
    )

    sections: dict[int, RawSection] = {}
    code_sections: set[int] = set()
    pending_relocations = []
    for ordinal, section in enumerate(binary.sections, start=1):
        name = f"{lief_name(section.segment_name)},{lief_name(section.name)}"
        raw = RawSection(
            index=ordinal,
            name=name,
            address=section.virtual_address,
            data=bytes(section.content),
        )
        sections[ordinal] = raw
        image.sections.append(raw)
        if _is_code_section(section):
            code_sections.add(ordinal)
        pending_relocations.append((raw, list(section.relocations)))

    symbol_index: dict[tuple[str, int], int] = {}
    for index, symbol in enumerate(binary.symbols):
        name = lief_name(symbol.name)
        symbol_index.setdefault((name, symbol.value), index)

        n_type = _n_type(symbol)
        n_sect = symbol.numberof_sections
        linked = n_sect if (n_type & N_TYPE) == N_SECT and n_sect in sections else None
        if n_type & N_STAB:
            kind = SymbolKind.UNKNOWN
        elif linked is None:
            kind = SymbolKind.UNKNOWN
        elif linked in code_sections:
            kind = SymbolKind.TEXT
        else:
            kind = SymbolKind.DATA
        image.symbols.append(
            RawSymbol(
                index=index,
                name=name,
                address=symbol.value,
                kind=kind,
                section_index=linked,
            )
        )

    for owner, relocations in pending_relocations:
        for reloc in relocations:
            target = ABSOLUTE_TARGET
            if reloc.has_symbol:
                key = (lief_name(reloc.symbol.name), reloc.symbol.value)
                target_index = symbol_index.get(key)
                target = (
                    RelocationTarget.symbol(target_index)
                    if target_index is not None
                    else UNKNOWN_TARGET
                )
            elif reloc.has_section:
                target = RelocationTarget(TargetKind.SECTION)
            owner.relocations.append(
                Relocation(
                    address=owner.address + reloc.address,
                    target=target,
                    type=int(reloc.type),
                )
            )

    return image
