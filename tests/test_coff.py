"""Tests for the COFF reader and format detection."""

import struct

import pytest

from asmview.errors import ObjectFormatError
from asmview.formats import detect_format, read_object
from asmview.formats.coff import read_coff
from asmview.model import ABSOLUTE_TARGET, BinaryFormat, RelocationTarget, SymbolKind
from conftest import (
    IMAGE_FILE_MACHINE_I386,
    PAIR_TEXT,
    CoffSection,
    CoffSymbol,
    build_coff,
)


class TestDetectFormat:
    def test_elf(self) -> None:
        assert detect_format(b"\x7fELF\x02\x01\x01\x00") is BinaryFormat.ELF

    def test_macho_64(self) -> None:
        assert detect_format(b"\xcf\xfa\xed\xfe" + bytes(28)) is BinaryFormat.MACHO

    def test_fat_macho(self) -> None:
        assert detect_format(b"\xca\xfe\xba\xbe\x00\x00\x00\x02") is BinaryFormat.MACHO

    def test_java_class_is_not_fat(self) -> None:
        assert detect_format(b"\xca\xfe\xba\xbe\x00\x00\x00\x34") is None

    def test_coff(self, coff_pair: bytes) -> None:
        assert detect_format(coff_pair) is BinaryFormat.COFF

    def test_garbage(self) -> None:
        assert detect_format(b"definitely not an object file") is None

    def test_read_object_rejects_garbage(self) -> None:
        with pytest.raises(ObjectFormatError):
            read_object(b"definitely not an object file")


class TestReadCoff:
    def test_sections_and_symbols(self, coff_pair: bytes) -> None:
        image = read_coff(coff_pair)
        assert image.format is BinaryFormat.COFF
        assert image.bitness == 64
        (text,) = image.sections
        assert text.index == 1
        assert text.name == ".text"
        assert text.address == 0x1000
        assert text.data == PAIR_TEXT
        assert [(s.name, s.address, s.kind) for s in image.symbols] == [
            ("first", 0x1000, SymbolKind.TEXT),
            ("second", 0x1040, SymbolKind.TEXT),
        ]
        assert all(s.section_index == 1 for s in image.symbols)

    def test_i386_bitness(self) -> None:
        data = build_coff(
            [CoffSection(".text", b"\xc3")],
            [CoffSymbol("_f", 0, 1)],
            machine=IMAGE_FILE_MACHINE_I386,
        )
        assert read_coff(data).bitness == 32

    def test_data_symbol_is_not_code(self) -> None:
        data = build_coff(
            [CoffSection(".data", b"\x00" * 4, characteristics=0xC0000040)],
            [CoffSymbol("counter", 0, 1, type=0)],
        )
        (symbol,) = read_coff(data).symbols
        assert symbol.kind is SymbolKind.DATA

    def test_long_names_use_string_table(self) -> None:
        data = build_coff(
            [CoffSection(".text$mn_long", b"\xc3")],
            [CoffSymbol("a_rather_long_function_name", 0, 1)],
        )
        image = read_coff(data)
        assert image.sections[0].name == ".text$mn_long"
        assert image.symbols[0].name == "a_rather_long_function_name"

    def test_undefined_symbol_is_unlinked(self) -> None:
        data = build_coff(
            [CoffSection(".text", b"\xc3")],
            [CoffSymbol("external_fn", 0, 0)],
        )
        (symbol,) = read_coff(data).symbols
        assert symbol.section_index is None

    def test_relocations(self, coff_reloc: bytes) -> None:
        (text,) = read_coff(coff_reloc).sections
        (reloc,) = text.relocations
        assert reloc.address == 2
        assert reloc.target == RelocationTarget.symbol(1)
        assert reloc.type == 4

    def test_relocation_to_missing_symbol_is_absolute(self) -> None:
        data = build_coff(
            [CoffSection(".text", b"\x90" * 8, relocs=[(0, 99, 4)])],
            [CoffSymbol("f", 0, 1)],
        )
        (reloc,) = read_coff(data).sections[0].relocations
        assert reloc.target == ABSOLUTE_TARGET

    def test_out_of_bounds_section_is_dropped(self) -> None:
        data = bytearray(
            build_coff(
                [CoffSection(".text", b"\xc3"), CoffSection(".data", b"\x00")],
                [CoffSymbol("f", 0, 1)],
            )
        )
        # Point the second section's raw data far past the end of the file
        struct.pack_into("<I", data, 20 + 40 + 20, 0x10000)
        image = read_coff(bytes(data))
        assert [s.name for s in image.sections] == [".text"]

    def test_truncated_header(self) -> None:
        with pytest.raises(ObjectFormatError):
            read_coff(b"\x64\x86\x01\x00")

    def test_symbol_table_out_of_bounds(self, coff_pair: bytes) -> None:
        data = bytearray(coff_pair)
        struct.pack_into("<I", data, 8, len(data) + 100)
        with pytest.raises(ObjectFormatError):
            read_coff(bytes(data))

    def test_invalid_utf8_symbol_name_is_replaced(self) -> None:
        data = build_coff(
            [CoffSection(".text", b"\xc3")], [CoffSymbol("long_function_name", 0, 1)]
        )
        data = data.replace(b"long_function", b"long\xfffunction")
        (symbol,) = read_coff(data).symbols
        assert symbol.name == "long\ufffdfunction_name"
