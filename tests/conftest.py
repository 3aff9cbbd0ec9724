"""Synthetic object-file builders shared by the test modules.

Everything is packed by hand with ``struct`` so the tests do not need a
compiler or assembler: a COFF ``.obj`` (AMD64 / i386), a minimal ELF64
relocatable with ``.text``, ``.rela.text`` and a symbol table, a Mach-O 64
``MH_OBJECT`` with one ``__TEXT,__text`` section, and SysV ``ar`` archives
with optional GNU long-name tables.
"""

import struct
from dataclasses import dataclass, field

import pytest

# ---------------------------------------------------------------------------
# COFF
# ---------------------------------------------------------------------------

IMAGE_FILE_MACHINE_AMD64 = 0x8664
IMAGE_FILE_MACHINE_I386 = 0x14C
CODE_CHARACTERISTICS = 0x60000020  # CNT_CODE | MEM_EXECUTE | MEM_READ
DTYPE_FUNCTION = 0x20


@dataclass
class CoffSection:
    name: str
    data: bytes
    vaddr: int = 0
    # (vaddr, symbol index, type)
    relocs: list = field(default_factory=list)
    characteristics: int = CODE_CHARACTERISTICS


@dataclass
class CoffSymbol:
    name: str
    value: int
    section: int  # 1-based section number, 0 = undefined
    type: int = DTYPE_FUNCTION
    storage: int = 2  # EXTERNAL


def build_coff(
    sections: list[CoffSection],
    symbols: list[CoffSymbol],
    machine: int = IMAGE_FILE_MACHINE_AMD64,
) -> bytes:
    strings = bytearray()

    def name_field(name: str, for_symbol: bool) -> bytes:
        raw = name.encode()
        if len(raw) <= 8:
            return raw.ljust(8, b"\x00")
        offset = 4 + len(strings)
        strings.extend(raw + b"\x00")
        if for_symbol:
            return struct.pack("<II", 0, offset)
        return f"/{offset}".encode().ljust(8, b"\x00")

    header_end = 20 + 40 * len(sections)
    headers = bytearray()
    body = bytearray()
    for sec in sections:
        raw_ptr = header_end + len(body)
        body.extend(sec.data)
        reloc_ptr = header_end + len(body) if sec.relocs else 0
        for vaddr, sym_index, rtype in sec.relocs:
            body.extend(struct.pack("<IIH", vaddr, sym_index, rtype))
        headers.extend(
            struct.pack(
                "<8sIIIIIIHHI",
                name_field(sec.name, False),
                len(sec.data),
                sec.vaddr,
                len(sec.data),
                raw_ptr,
                reloc_ptr,
                0,
                len(sec.relocs),
                0,
                sec.characteristics,
            )
        )

    sym_offset = header_end + len(body)
    symtab = bytearray()
    for sym in symbols:
        symtab.extend(
            struct.pack(
                "<8sIhHBB",
                name_field(sym.name, True),
                sym.value,
                sym.section,
                sym.type,
                sym.storage,
                0,
            )
        )

    header = struct.pack(
        "<HHIIIHH", machine, len(sections), 0, sym_offset if symbols else 0, len(symbols), 0, 0
    )
    string_table = struct.pack("<I", 4 + len(strings)) + bytes(strings)
    return bytes(header + headers + body + symtab + string_table)


# ---------------------------------------------------------------------------
# ELF64 relocatable
# ---------------------------------------------------------------------------

R_X86_64_PC32 = 2
R_X86_64_PLT32 = 4


def _align(buf: bytearray, n: int) -> None:
    while len(buf) % n:
        buf.append(0)


def build_elf64_rel(
    text: bytes,
    functions: list[tuple[str, int, int]],
    relocations: list[tuple[int, str, int, int]] = (),
) -> bytes:
    """ELF64 little-endian x86-64 ``ET_REL`` with one ``.text`` section.

    *functions* are ``(name, value, size)`` STT_FUNC globals in ``.text``;
    *relocations* are ``(offset, symbol name, type, addend)`` against it.
    """
    strtab = bytearray(b"\x00")
    sym_names = {}
    for name, _, _ in functions:
        sym_names[name] = len(strtab)
        strtab.extend(name.encode() + b"\x00")

    # null, section symbol for .text, then the functions
    symtab = bytearray(struct.pack("<IBBHQQ", 0, 0, 0, 0, 0, 0))
    symtab.extend(struct.pack("<IBBHQQ", 0, 0x03, 0, 1, 0, 0))
    sym_index = {}
    for i, (name, value, size) in enumerate(functions, start=2):
        sym_index[name] = i
        symtab.extend(struct.pack("<IBBHQQ", sym_names[name], 0x12, 0, 1, value, size))

    rela = bytearray()
    for offset, name, rtype, addend in relocations:
        rela.extend(struct.pack("<QQq", offset, (sym_index[name] << 32) | rtype, addend))

    names = [".text", ".rela.text", ".symtab", ".strtab", ".shstrtab"]
    shstrtab = bytearray(b"\x00")
    name_offsets = {}
    for name in names:
        name_offsets[name] = len(shstrtab)
        shstrtab.extend(name.encode() + b"\x00")

    out = bytearray(64)
    text_off = len(out)
    out.extend(text)
    _align(out, 8)
    rela_off = len(out)
    out.extend(rela)
    _align(out, 8)
    symtab_off = len(out)
    out.extend(symtab)
    strtab_off = len(out)
    out.extend(strtab)
    shstrtab_off = len(out)
    out.extend(shstrtab)
    _align(out, 8)
    shoff = len(out)

    def shdr(name, sh_type, flags, offset, size, link=0, info=0, align=1, entsize=0):
        return struct.pack(
            "<IIQQQQIIQQ",
            name_offsets[name] if name else 0,
            sh_type,
            flags,
            0,
            offset,
            size,
            link,
            info,
            align,
            entsize,
        )

    out.extend(shdr(None, 0, 0, 0, 0))
    out.extend(shdr(".text", 1, 0x6, text_off, len(text), align=16))
    out.extend(
        shdr(".rela.text", 4, 0x40, rela_off, len(rela), link=3, info=1, align=8, entsize=24)
    )
    out.extend(shdr(".symtab", 2, 0, symtab_off, len(symtab), link=4, info=2, align=8, entsize=24))
    out.extend(shdr(".strtab", 3, 0, strtab_off, len(strtab)))
    out.extend(shdr(".shstrtab", 3, 0, shstrtab_off, len(shstrtab)))

    ident = b"\x7fELF" + bytes([2, 1, 1, 0]) + bytes(8)
    out[0:64] = ident + struct.pack(
        "<HHIQQQIHHHHHH", 1, 62, 1, 0, 0, shoff, 0, 64, 0, 0, 64, 6, 5
    )
    return bytes(out)


# ---------------------------------------------------------------------------
# Mach-O 64 object
# ---------------------------------------------------------------------------

MH_MAGIC_64 = 0xFEEDFACF
CPU_TYPE_X86_64 = 0x01000007
MH_OBJECT = 1
LC_SEGMENT_64 = 0x19
LC_SYMTAB = 0x2
N_SECT_EXT = 0x0F
X86_64_RELOC_BRANCH = 2


def build_macho64_obj(
    text: bytes,
    functions: list[tuple[str, int]],
    relocations: list[tuple[int, str, int]] = (),
) -> bytes:
    """Little-endian x86-64 ``MH_OBJECT`` with one ``__TEXT,__text`` section.

    *functions* are ``(name, value)`` external symbols defined in section 1;
    *relocations* are ``(r_address, symbol name, r_type)`` extern, pc-relative
    32-bit fixups against it.
    """
    strtab = bytearray(b"\x00")
    symtab = bytearray()
    sym_index = {}
    for i, (name, value) in enumerate(functions):
        sym_index[name] = i
        symtab.extend(struct.pack("<IBBHQ", len(strtab), N_SECT_EXT, 1, 0, value))
        strtab.extend(name.encode() + b"\x00")

    relocs = bytearray()
    for address, name, rtype in relocations:
        # r_symbolnum:24 r_pcrel:1 r_length:2 r_extern:1 r_type:4
        info = sym_index[name] | (1 << 24) | (2 << 25) | (1 << 27) | (rtype << 28)
        relocs.extend(struct.pack("<iI", address, info))

    header_size = 32
    segment_size = 72 + 80
    symtab_cmd_size = 24
    out = bytearray(header_size + segment_size + symtab_cmd_size)
    text_off = len(out)
    out.extend(text)
    _align(out, 8)
    reloc_off = len(out)
    out.extend(relocs)
    symtab_off = len(out)
    out.extend(symtab)
    strtab_off = len(out)
    out.extend(strtab)
    _align(out, 8)

    struct.pack_into(
        "<IiiIIIII", out, 0,
        MH_MAGIC_64, CPU_TYPE_X86_64, 3, MH_OBJECT, 2, segment_size + symtab_cmd_size, 0, 0,
    )
    struct.pack_into(
        "<II16sQQQQiiII", out, header_size,
        LC_SEGMENT_64, segment_size, b"", 0, len(text), text_off, len(text), 7, 7, 1, 0,
    )
    struct.pack_into(
        "<16s16sQQIIIIIIII", out, header_size + 72,
        b"__text", b"__TEXT", 0, len(text), text_off, 4,
        reloc_off if relocations else 0, len(relocations), 0x80000400, 0, 0, 0,
    )
    struct.pack_into(
        "<IIIIII", out, header_size + segment_size,
        LC_SYMTAB, symtab_cmd_size, symtab_off, len(functions), strtab_off, len(strtab),
    )
    return bytes(out)


# ---------------------------------------------------------------------------
# ar archives
# ---------------------------------------------------------------------------


def _ar_header(name: bytes, size: int) -> bytes:
    return (
        name.ljust(16)
        + b"0".ljust(12)
        + b"0".ljust(6)
        + b"0".ljust(6)
        + b"644".ljust(8)
        + str(size).encode().ljust(10)
        + b"`\n"
    )


def build_ar(members: list[tuple[str, bytes]], thin: bool = False) -> bytes:
    """SysV/GNU archive; names longer than 15 bytes go to a ``//`` table."""
    out = bytearray(b"!<thin>\n" if thin else b"!<arch>\n")
    table = bytearray()
    encoded = []
    for name, _ in members:
        raw = name.encode()
        if len(raw) > 15:
            encoded.append(b"/" + str(len(table)).encode())
            table.extend(raw + b"/\n")
        else:
            encoded.append(raw + b"/")
    if table:
        out.extend(_ar_header(b"//", len(table)))
        out.extend(table)
        if len(table) % 2:
            out.extend(b"\n")
    for raw_name, (_, data) in zip(encoded, members):
        out.extend(_ar_header(raw_name, len(data)))
        if thin:
            continue
        out.extend(data)
        if len(data) % 2:
            out.extend(b"\n")
    return bytes(out)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

# Two functions back to back in a 0x80-byte section at 0x1000
PAIR_TEXT = b"\x55\x48\x89\xe5\x5d\xc3" + b"\x90" * 0x3A + b"\x31\xc0\xc3" + b"\xcc" * 0x3D


@pytest.fixture
def coff_pair() -> bytes:
    """AMD64 COFF object: ``first`` at 0x1000 and ``second`` at 0x1040."""
    return build_coff(
        [CoffSection(".text", PAIR_TEXT, vaddr=0x1000)],
        [CoffSymbol("first", 0x0, 1), CoffSymbol("second", 0x40, 1)],
    )


@pytest.fixture
def coff_reloc() -> bytes:
    """``caller`` loads ``baz`` through a RIP-relative displacement.

    ``8B 05 78 56 34 12`` is ``mov eax, dword ptr [rip + 0x12345678]``;
    the displacement field (offset 2) carries a fixup against ``baz``.
    """
    text = b"\x8b\x05\x78\x56\x34\x12" + b"\xc3" + b"\xc3"
    return build_coff(
        [CoffSection(".text", text, relocs=[(2, 1, 4)])],
        [CoffSymbol("caller", 0, 1), CoffSymbol("baz", 7, 1)],
    )


@pytest.fixture
def elf_call() -> bytes:
    """ELF64 object: ``main`` calls ``helper`` through a PLT32 fixup."""
    text = b"\xe8\x00\x00\x00\x00\xc3" + b"\x31\xc0\xc3"
    return build_elf64_rel(
        text,
        [("main", 0, 6), ("helper", 6, 3)],
        [(1, "helper", R_X86_64_PLT32, -4)],
    )


@pytest.fixture
def macho_call() -> bytes:
    """Mach-O object: ``_main`` calls ``_helper`` through a branch fixup."""
    text = b"\xe8\x00\x00\x00\x00\xc3" + b"\x31\xc0\xc3"
    return build_macho64_obj(
        text,
        [("_main", 0), ("_helper", 6)],
        [(1, "_helper", X86_64_RELOC_BRANCH)],
    )
