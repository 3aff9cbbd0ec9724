"""Unix ``ar`` archive walker.

Handles the archive flavours object files travel in:

- System V / GNU (``.a``): ``/`` symbol index, ``//`` long-name table,
  ``name/`` short names and ``/123`` long-name references.
- BSD / macOS: ``#1/N`` inline names and ``__.SYMDEF`` indexes.
- MSVC ``.lib``: two ``/`` linker members, ``//`` long names, optional
  ``/<ECSYMBOLS>/``.
- GNU thin archives (``!<thin>\\n``): members are references to files on
  disk, so their bytes are reported as unavailable.

Usage::

    from asmview.archive import is_archive, iter_members

    if is_archive(data):
        for member in iter_members(data):
            if member.data is not None:
                ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from asmview.errors import ArchiveError

AR_MAGIC = b"!<arch>\n"
THIN_MAGIC = b"!<thin>\n"
HEADER_SIZE = 60

# Index members that describe the archive rather than hold an object
_SPECIAL_MEMBERS = frozenset(
    {"/", "//", "/SYM64/", "/<ECSYMBOLS>/", "/<XFGHASHMAP>/", "__.SYMDEF", "__.SYMDEF SORTED",
     "__.SYMDEF_64", "__.SYMDEF_64 SORTED"}
)


@dataclass(frozen=True)
class ArchiveMember:
    """One named archive member; ``data`` is ``None`` when not embedded."""

    name: str
    data: bytes | None


def is_archive(data: bytes) -> bool:
    """Return True if *data* starts with a regular or thin archive magic."""
    return data.startswith(AR_MAGIC) or data.startswith(THIN_MAGIC)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _long_name(table: bytes, offset: int) -> str | None:
    """Look up a ``/123`` reference in the GNU/MSVC long-name table."""
    if offset < 0 or offset >= len(table):
        return None
    end = len(table)
    for terminator in (b"/\n", b"\n", b"\x00"):
        pos = table.find(terminator, offset)
        if pos != -1:
            end = min(end, pos)
    return _decode(table[offset:end])


def iter_members(data: bytes) -> Iterator[ArchiveMember]:
    """Yield every object member of the archive in *data*.

    Raises:
        ArchiveError: If *data* does not start with an archive magic.

    A truncated or malformed header ends the walk; everything yielded before
    it is still valid.  A member whose declared size runs past the end of the
    buffer is yielded with ``data=None``.
    """
    if data.startswith(AR_MAGIC):
        thin = False
    elif data.startswith(THIN_MAGIC):
        thin = True
    else:
        raise ArchiveError("not an ar archive")

    long_names = b""
    pos = len(AR_MAGIC)
    while pos < len(data):
        if pos % 2 == 1:
            pos += 1
        if pos + HEADER_SIZE > len(data):
            break

        header = data[pos:pos + HEADER_SIZE]
        if header[58:60] != b"`\n":
            break
        try:
            size = int(header[48:58].strip() or b"0")
        except ValueError:
            break
        if size < 0:
            break

        raw_name = header[0:16].rstrip(b" ")
        body_start = pos + HEADER_SIZE
        body_end = body_start + size
        pos = body_end

        # BSD: the name is stored in front of the member data
        if raw_name.startswith(b"#1/"):
            try:
                name_len = int(raw_name[3:])
            except ValueError:
                continue
            name = _decode(data[body_start:body_start + name_len].rstrip(b"\x00"))
            body_start += name_len
        else:
            name = _decode(raw_name)

        if name == "//":
            long_names = data[body_start:body_end]
            continue
        if name in _SPECIAL_MEMBERS or name == "":
            continue

        # GNU "/123" offsets; bytes.isdigit() only accepts ASCII digits
        if raw_name.startswith(b"/") and raw_name[1:].isdigit():
            resolved = _long_name(long_names, int(raw_name[1:]))
            if resolved is None:
                continue
            name = resolved
        name = name.rstrip("/")

        # Thin archives only embed the symbol index and name table
        if thin:
            pos = body_start
            yield ArchiveMember(name, None)
            continue

        if body_end > len(data):
            yield ArchiveMember(name, None)
            break
        yield ArchiveMember(name, data[body_start:body_end])
