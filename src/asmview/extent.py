"""Symbol extent estimation.

Object-file symbol tables rarely carry reliable sizes for code symbols, so a
symbol is assumed to run until the next known code symbol in its section, or
to the end of the section when it is the last one.

Addresses are unsigned 64-bit quantities.  Python integers never wrap, so
every step goes through :func:`checked_add` / :func:`checked_sub`, which
return ``None`` where a 64-bit machine would have overflowed.
"""

from __future__ import annotations

from bisect import bisect_left
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from asmview.model import Symbol

U64_MAX = (1 << 64) - 1


def checked_add(a: int, b: int) -> int | None:
    """``a + b`` as u64, or ``None`` on overflow or negative operands."""
    if a < 0 or b < 0:
        return None
    result = a + b
    if result > U64_MAX:
        return None
    return result


def checked_sub(a: int, b: int) -> int | None:
    """``a - b`` as u64, or ``None`` if the result would be negative."""
    if a < 0 or b < 0 or a > U64_MAX or b > U64_MAX:
        return None
    if b > a:
        return None
    return a - b


def estimate_size(symbol: Symbol) -> int | None:
    """Estimate the byte extent of *symbol*.

    Returns ``None`` when the symbol has no section, when its address is not
    one of the section's recorded code-symbol addresses, or when the
    arithmetic would overflow (e.g. the symbol lies beyond the section end).
    """
    section = symbol.section
    if section is None:
        return None

    addresses = section.symbols
    i = bisect_left(addresses, symbol.address)
    if i == len(addresses) or addresses[i] != symbol.address:
        return None

    if i + 1 == len(addresses):
        end = checked_add(section.address, len(section.data))
        if end is None:
            return None
        return checked_sub(end, symbol.address)
    return checked_sub(addresses[i + 1], symbol.address)


def symbol_data(symbol: Symbol) -> bytes | None:
    """Return the exact bytes of *symbol*'s estimated extent.

    Never reads past the section: any inconsistency yields ``None``.
    """
    section = symbol.section
    if section is None:
        return None
    size = estimate_size(symbol)
    if size is None:
        return None
    offset = checked_sub(symbol.address, section.address)
    if offset is None:
        return None
    end = checked_add(offset, size)
    if end is None or end > len(section.data):
        return None
    return section.data[offset:end]
