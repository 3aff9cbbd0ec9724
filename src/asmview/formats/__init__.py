"""Object file format backends.

Each supported format is one variant of a closed set.  Detection looks at
the magic bytes only; the matching backend then reduces the file to a
format-neutral :class:`ObjectImage` that :mod:`asmview.builder` turns into
the immutable model.

Usage::

    from asmview.formats import detect_format, read_object

    fmt = detect_format(data)
    if fmt is not None:
        image = read_object(data, fmt)   # raises ObjectFormatError
"""

from __future__ import annotations

import struct
from collections.abc import Callable
from dataclasses import dataclass, field

from asmview.errors import ObjectFormatError
from asmview.model import BinaryFormat, Relocation, SymbolKind

# ---------------------------------------------------------------------------
# Format-neutral records
# ---------------------------------------------------------------------------


@dataclass
class RawSection:
    """A section as read by a backend, keyed by its native index."""

    index: int
    name: str
    address: int
    data: bytes
    relocations: list[Relocation] = field(default_factory=list)


@dataclass
class RawSymbol:
    """A symbol-table entry as read by a backend."""

    index: int
    name: str
    address: int
    kind: SymbolKind
    section_index: int | None = None
    size: int = 0


@dataclass
class ObjectImage:
    """Everything the model builder needs from one object file."""

    format: BinaryFormat
    bitness: int = 64
    sections: list[RawSection] = field(default_factory=list)
    symbols: list[RawSymbol] = field(default_factory=list)


def lief_name(name: str | bytes) -> str:
    """Normalise a LIEF name; LIEF hands back ``bytes`` for invalid UTF-8."""
    if isinstance(name, bytes):
        return name.decode("utf-8", errors="replace")
    return name


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

_MACHO_MAGICS = (
    b"\xfe\xed\xfa\xce",
    b"\xfe\xed\xfa\xcf",
    b"\xce\xfa\xed\xfe",
    b"\xcf\xfa\xed\xfe",
)
_FAT_MAGIC = b"\xca\xfe\xba\xbe"

# i386, AMD64, ARM (Thumb), ARM64, unknown (used by some toolchains)
COFF_MACHINES = frozenset({0x14C, 0x8664, 0x1C0, 0x1C4, 0xAA64, 0x0})


def _looks_like_coff(data: bytes) -> bool:
    """Heuristic COFF check: there is no magic, only a plausible header."""
    if len(data) < 20:
        return False
    machine, nsections = struct.unpack_from("<HH", data, 0)
    opt_size = struct.unpack_from("<H", data, 16)[0]
    if machine not in COFF_MACHINES:
        return False
    # Import objects and bigobj start with 0x0000 0xFFFF
    if machine == 0 and nsections == 0xFFFF:
        return False
    if nsections == 0 and machine == 0:
        return False
    return 20 + opt_size + nsections * 40 <= len(data)


def detect_format(data: bytes) -> BinaryFormat | None:
    """Detect the object format of *data* from its leading bytes."""
    head = data[:4]
    if head == b"\x7fELF":
        return BinaryFormat.ELF
    if head in _MACHO_MAGICS:
        return BinaryFormat.MACHO
    if head == _FAT_MAGIC:
        # Java class files share this magic; fat headers have a small arch count
        if len(data) >= 8 and 0 < struct.unpack_from(">I", data, 4)[0] < 0x20:
            return BinaryFormat.MACHO
        return None
    if _looks_like_coff(data):
        return BinaryFormat.COFF
    return None


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def _read_elf(data: bytes) -> ObjectImage:
    from asmview.formats.elf import read_elf

    return read_elf(data)


def _read_macho(data: bytes) -> ObjectImage:
    from asmview.formats.macho import read_macho

    return read_macho(data)


def _read_coff(data: bytes) -> ObjectImage:
    from asmview.formats.coff import read_coff

    return read_coff(data)


_READERS: dict[BinaryFormat, Callable[[bytes], ObjectImage]] = {
    BinaryFormat.ELF: _read_elf,
    BinaryFormat.MACHO: _read_macho,
    BinaryFormat.COFF: _read_coff,
}


def read_object(data: bytes, fmt: BinaryFormat | None = None) -> ObjectImage:
    """Parse *data* with the backend for *fmt* (auto-detected if ``None``).

    Raises:
        ObjectFormatError: If the format is unknown or the backend fails.
    """
    if fmt is None:
        fmt = detect_format(data)
    if fmt is None:
        raise ObjectFormatError("unrecognised object format")
    try:
        return _READERS[fmt](data)
    except (struct.error, ValueError, TypeError, IndexError, OverflowError) as exc:
        raise ObjectFormatError(f"malformed {fmt.value} object: {exc}") from exc
