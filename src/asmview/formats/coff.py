"""COFF object (``.obj``) reader backed by LIEF.

LIEF parses the section table, relocation tables, symbol table and string
table; this module maps them onto :class:`~asmview.formats.ObjectImage`.
COFF objects carry no magic, so the file header is sanity-checked against
the buffer before LIEF sees it.  A section whose raw data runs past the end
of the file is dropped on its own.
"""

from __future__ import annotations

import io
import struct

import lief

from asmview.errors import ObjectFormatError
from asmview.formats import COFF_MACHINES, ObjectImage, RawSection, RawSymbol, lief_name
from asmview.model import (
    ABSOLUTE_TARGET,
    BinaryFormat,
    Relocation,
    RelocationTarget,
    SymbolKind,
    UNKNOWN_TARGET,
)

FILE_HEADER_SIZE = 20
SYMBOL_SIZE = 18

IMAGE_SCN_CNT_UNINITIALIZED_DATA = 0x00000080

IMAGE_SYM_CLASS_EXTERNAL = 2
IMAGE_SYM_CLASS_STATIC = 3
IMAGE_SYM_CLASS_LABEL = 6
IMAGE_SYM_CLASS_FILE = 103
IMAGE_SYM_CLASS_SECTION = 104
IMAGE_SYM_CLASS_WEAK_EXTERNAL = 105

IMAGE_SYM_DTYPE_FUNCTION = 2

_MACHINE_BITNESS = {
    0x14C: 32,  # i386
    0x8664: 64,  # AMD64
}


def _check_header(data: bytes) -> int:
    """Validate the file header against the buffer and return the machine."""
    if len(data) < FILE_HEADER_SIZE:
        raise ObjectFormatError("COFF header truncated")
    machine, _nsections, _timestamp, sym_offset, num_symbols, _opt_size, _chars = (
        struct.unpack_from("<HHIIIHH", data, 0)
    )
    if machine not in COFF_MACHINES:
        raise ObjectFormatError(f"unknown COFF machine 0x{machine:x}")
    if num_symbols and (sym_offset == 0 or sym_offset + num_symbols * SYMBOL_SIZE > len(data)):
        raise ObjectFormatError("COFF symbol table out of bounds")
    return machine


def _section_name(section: lief.COFF.Section) -> str:
    # "/123" names live in the string table; fullname resolves them
    return lief_name(getattr(section, "fullname", None) or section.name)


def _section_key(section: lief.COFF.Section) -> tuple[str, int, int]:
    return (_section_name(section), section.pointerto_raw_data, section.sizeof_raw_data)


def _symbol_key(symbol: lief.COFF.Symbol) -> tuple[str, int, int]:
    return (lief_name(symbol.name), symbol.value, symbol.section_idx)


def _symbol_kind(symbol: lief.COFF.Symbol) -> SymbolKind:
    storage_class = int(symbol.storage_class)
    if storage_class in (
        IMAGE_SYM_CLASS_EXTERNAL,
        IMAGE_SYM_CLASS_STATIC,
        IMAGE_SYM_CLASS_WEAK_EXTERNAL,
    ):
        if int(symbol.complex_type) == IMAGE_SYM_DTYPE_FUNCTION:
            return SymbolKind.TEXT
        return SymbolKind.DATA
    if storage_class == IMAGE_SYM_CLASS_SECTION:
        return SymbolKind.SECTION
    if storage_class == IMAGE_SYM_CLASS_FILE:
        return SymbolKind.FILE
    if storage_class == IMAGE_SYM_CLASS_LABEL:
        return SymbolKind.LABEL
    return SymbolKind.UNKNOWN


def _section_content(section: lief.COFF.Section, size: int) -> bytes | None:
    if int(section.characteristics) & IMAGE_SCN_CNT_UNINITIALIZED_DATA:
        return b""
    if section.pointerto_raw_data + section.sizeof_raw_data > size:
        return None
    return bytes(section.content)


def read_coff(data: bytes) -> ObjectImage:
    """Parse a COFF object file.

    Raises:
        ObjectFormatError: If the file header is inconsistent with the buffer
            or LIEF rejects it.
    """
    machine = _check_header(data)
    try:
        binary = lief.COFF.parse(io.BytesIO(data))
    except (RuntimeError, ValueError, TypeError) as exc:
        raise ObjectFormatError(f"LIEF failed to parse COFF: {exc}") from exc
    if binary is None:
        raise ObjectFormatError("LIEF failed to parse COFF")

    image = ObjectImage(format=BinaryFormat.COFF, bitness=_MACHINE_BITNESS.get(machine, 64))

    # --- sections ---------------------------------------------------------
    section_index: dict[tuple[str, int, int], int] = {}
    sections: dict[int, RawSection] = {}
    pending_relocations = []
    # COFF section numbers are 1-based
    for index, section in enumerate(binary.sections, start=1):
        content = _section_content(section, len(data))
        if content is None:
            continue
        section_index.setdefault(_section_key(section), index)
        raw = RawSection(
            index=index,
            name=_section_name(section),
            address=section.virtual_address,
            data=content,
        )
        sections[index] = raw
        image.sections.append(raw)
        pending_relocations.append((raw, list(section.relocations)))

    # --- symbols ----------------------------------------------------------
    symbol_index: dict[tuple[str, int, int], int] = {}
    for index, symbol in enumerate(binary.symbols):
        symbol_index.setdefault(_symbol_key(symbol), index)

        linked = None
        owner = symbol.section
        if owner is not None:
            linked = section_index.get(_section_key(owner))
        # Values are section-relative in object files
        address = symbol.value
        if linked is not None:
            address += sections[linked].address

        image.symbols.append(
            RawSymbol(
                index=index,
                name=lief_name(symbol.name),
                address=address,
                kind=_symbol_kind(symbol),
                section_index=linked,
            )
        )

    # --- relocations ------------------------------------------------------
    for owner, relocations in pending_relocations:
        for reloc in relocations:
            target = ABSOLUTE_TARGET
            if reloc.symbol is not None:
                target_index = symbol_index.get(_symbol_key(reloc.symbol))
                if target_index is None:
                    target = UNKNOWN_TARGET
                else:
                    target = RelocationTarget.symbol(target_index)
            owner.relocations.append(
                Relocation(address=reloc.address, target=target, type=int(reloc.type))
            )

    return image
