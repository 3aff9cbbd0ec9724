"""ELF object reader backed by LIEF.

LIEF parses the headers, sections, symbol tables and relocation tables;
this module maps them onto :class:`~asmview.formats.ObjectImage` and inflates
compressed sections (``SHF_COMPRESSED`` and legacy ``.zdebug``) itself.
"""

from __future__ import annotations

import io
import struct
import zlib

import lief

from asmview.errors import ObjectFormatError
from asmview.formats import ObjectImage, RawSection, RawSymbol, lief_name
from asmview.model import (
    ABSOLUTE_TARGET,
    BinaryFormat,
    Relocation,
    RelocationTarget,
    SymbolKind,
    UNKNOWN_TARGET,
)

SHF_COMPRESSED = 0x800
ELFCOMPRESS_ZLIB = 1
ET_REL = 1

_ELF_MACHINE_BITNESS: dict[lief.ELF.ARCH, int] = {
    lief.ELF.ARCH.I386: 32,
    lief.ELF.ARCH.X86_64: 64,
}

_SYMBOL_KINDS: dict[lief.ELF.Symbol.TYPE, SymbolKind] = {
    lief.ELF.Symbol.TYPE.FUNC: SymbolKind.TEXT,
    lief.ELF.Symbol.TYPE.GNU_IFUNC: SymbolKind.TEXT,
    lief.ELF.Symbol.TYPE.OBJECT: SymbolKind.DATA,
    lief.ELF.Symbol.TYPE.COMMON: SymbolKind.DATA,
    lief.ELF.Symbol.TYPE.TLS: SymbolKind.DATA,
    lief.ELF.Symbol.TYPE.SECTION: SymbolKind.SECTION,
    lief.ELF.Symbol.TYPE.FILE: SymbolKind.FILE,
}


def _inflate(
    section_name: str, flags: int, content: bytes, is64: bool, little: bool
) -> bytes | None:
    """Return the decompressed section payload, or ``None`` if unsupported."""
    if flags & SHF_COMPRESSED:
        order = "<" if little else ">"
        if is64:
            fmt, header_size = order + "IIQQ", 24
        else:
            fmt, header_size = order + "III", 12
        if len(content) < header_size:
            return None
        fields = struct.unpack_from(fmt, content, 0)
        ch_type = fields[0]
        ch_size = fields[2] if is64 else fields[1]
        if ch_type != ELFCOMPRESS_ZLIB:
            return None
        payload = content[header_size:]
    elif section_name.startswith(".zdebug") and content.startswith(b"ZLIB"):
        if len(content) < 12:
            return None
        (ch_size,) = struct.unpack_from(">Q", content, 4)
        payload = content[12:]
    else:
        return content

    try:
        inflated = zlib.decompress(payload)
    except zlib.error:
        return None
    if len(inflated) != ch_size:
        return None
    return inflated


def _section_key(section: lief.ELF.Section) -> tuple[str, int, int]:
    return (lief_name(section.name), section.offset, section.size)


def _symbol_key(symbol: lief.ELF.Symbol) -> tuple[str, int, int]:
    return (lief_name(symbol.name), symbol.value, symbol.shndx)


def read_elf(data: bytes) -> ObjectImage:
    """Parse an ELF object file.

    Raises:
        ObjectFormatError: If LIEF rejects the buffer.
    """
    if len(data) < 18:
        raise ObjectFormatError("ELF header truncated")
    is64 = data[4] == 2
    little = data[5] != 2
    (e_type,) = struct.unpack_from("<H" if little else ">H", data, 16)
    relocatable = e_type == ET_REL

    try:
        binary = lief.ELF.parse(io.BytesIO(data))
    except (RuntimeError, ValueError, TypeError) as exc:
        raise ObjectFormatError(f"LIEF failed to parse ELF: {exc}") from exc
    if binary is None:
        raise ObjectFormatError("LIEF failed to parse ELF")

    image = ObjectImage(
        format=BinaryFormat.ELF,
        bitness=_ELF_MACHINE_BITNESS.get(binary.header.machine_type, 64),
    )

    # --- sections ---------------------------------------------------------
    section_index: dict[tuple[str, int, int], int] = {}
    sections: dict[int, RawSection] = {}
    for index, section in enumerate(binary.sections):
        name = lief_name(section.name)
        content = _inflate(name, int(section.flags), bytes(section.content), is64, little)
        if content is None:
            continue
        section_index.setdefault(_section_key(section), index)
        raw = RawSection(index=index, name=name, address=section.virtual_address, data=content)
        sections[index] = raw
        image.sections.append(raw)

    # --- symbols ----------------------------------------------------------
    symbol_index: dict[tuple[str, int, int], int] = {}
    for index, symbol in enumerate(binary.symbols):
        name = lief_name(symbol.name)
        symbol_index.setdefault(_symbol_key(symbol), index)

        linked = None
        owner = symbol.section
        if owner is not None:
            linked = section_index.get(_section_key(owner))
        address = symbol.value
        if relocatable and linked is not None:
            address += sections[linked].address

        if index == 0 and not name:
            kind = SymbolKind.NULL
        else:
            kind = _SYMBOL_KINDS.get(symbol.type, SymbolKind.UNKNOWN)
        image.symbols.append(
            RawSymbol(
                index=index,
                name=name,
                address=address,
                kind=kind,
                section_index=linked,
                size=symbol.size,
            )
        )

    # --- relocations ------------------------------------------------------
    for reloc in binary.relocations:
        applies_to = reloc.section
        if applies_to is None:
            continue
        owner_index = section_index.get(_section_key(applies_to))
        if owner_index is None:
            continue
        owner = sections[owner_index]

        target = ABSOLUTE_TARGET
        if reloc.has_symbol:
            target_index = symbol_index.get(_symbol_key(reloc.symbol))
            if target_index is None:
                target = UNKNOWN_TARGET
            else:
                target = RelocationTarget.symbol(target_index)

        address = owner.address + reloc.address if relocatable else reloc.address
        owner.relocations.append(
            Relocation(address=address, target=target, type=int(reloc.type), addend=reloc.addend)
        )

    return image
