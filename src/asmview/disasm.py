"""Instruction decoding and token formatting.

Decodes a symbol's bytes with capstone (x86, Intel syntax) and turns every
instruction into a sequence of ``(text, TokenKind)`` tokens.  When a
relocation covering the instruction resolves to a known code symbol, the
numeric literal of the relocated field is replaced by the symbol's display
name, so relocated references never show up as bare numbers.

Usage::

    from asmview.disasm import disassemble

    asm = disassemble(symbol, container)
    if asm is None:
        print("Assembly unavailable")
    else:
        for insn in asm:
            print(f"{insn.address:016X}  {insn.text}")
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator

import capstone

from asmview.model import Container, Section, Symbol
from asmview.relocations import resolve_relocation

_CS_MODES = {
    16: capstone.CS_MODE_16,
    32: capstone.CS_MODE_32,
    64: capstone.CS_MODE_64,
}

_KEYWORDS = frozenset(
    {
        "byte", "word", "dword", "fword", "qword", "tbyte", "xword", "oword",
        "xmmword", "ymmword", "zmmword", "ptr", "far", "near", "short",
    }
)

_TOKEN_RE = re.compile(r"\s+|0x[0-9a-fA-F]+|\d+|st\(\d\)|[A-Za-z_.][A-Za-z0-9_.]*|.")


class TokenKind(str, enum.Enum):
    """Syntactic role of a formatted token (presentation only)."""

    MNEMONIC = "mnemonic"
    PREFIX = "prefix"
    REGISTER = "register"
    NUMBER = "number"
    KEYWORD = "keyword"
    PUNCTUATION = "punctuation"
    SYMBOL = "symbol"
    TEXT = "text"


Token = tuple[str, TokenKind]


@dataclass(frozen=True)
class DecoderOptions:
    """Formatter settings.

    ``bitness`` overrides the container's x86 mode when set.
    """

    bitness: int | None = None
    first_operand_column: int = 10
    space_after_operand_separator: bool = True


@dataclass(frozen=True, eq=False)
class Instruction:
    """One decoded instruction."""

    address: int
    bytes: bytes
    tokens: tuple[Token, ...]
    relocation: Symbol | None = None

    @property
    def text(self) -> str:
        return "".join(text for text, _ in self.tokens)

    def __len__(self) -> int:
        return len(self.bytes)


@dataclass(frozen=True, eq=False)
class Assembly:
    """Address-ordered instructions covering one symbol's extent."""

    symbol: Symbol | None
    instructions: tuple[Instruction, ...]

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    def __len__(self) -> int:
        return len(self.instructions)


# ---------------------------------------------------------------------------
# Tokenizing
# ---------------------------------------------------------------------------


@lru_cache(maxsize=None)
def register_names() -> frozenset[str]:
    """All x86 register names capstone can print."""
    md = capstone.Cs(capstone.CS_ARCH_X86, capstone.CS_MODE_64)
    names = set()
    for reg in range(1, capstone.x86.X86_REG_ENDING):
        name = md.reg_name(reg)
        if name:
            names.add(name)
    return frozenset(names)


def tokenize_operand(text: str) -> list[Token]:
    """Split one Intel-syntax operand into classified tokens."""
    registers = register_names()
    tokens: list[Token] = []
    for match in _TOKEN_RE.finditer(text):
        piece = match.group(0)
        if piece.isspace():
            kind = TokenKind.TEXT
        elif piece[0].isdigit():
            kind = TokenKind.NUMBER
        elif piece in registers:
            kind = TokenKind.REGISTER
        elif piece in _KEYWORDS:
            kind = TokenKind.KEYWORD
        elif piece[0].isalpha() or piece[0] in "_.":
            kind = TokenKind.TEXT
        else:
            kind = TokenKind.PUNCTUATION
        tokens.append((piece, kind))
    return tokens


# ---------------------------------------------------------------------------
# Relocation substitution
# ---------------------------------------------------------------------------


def _number_positions(tokens: list[Token]) -> list[int]:
    return [i for i, (_, kind) in enumerate(tokens) if kind is TokenKind.NUMBER]


def _drop_number(tokens: list[Token], i: int) -> None:
    """Remove the number at *i*, with a leading `` + `` / `` - `` if present."""
    operator = i >= 3 and tokens[i - 2][0] in ("+", "-")
    if operator and tokens[i - 1][0].isspace() and tokens[i - 3][0].isspace():
        del tokens[i - 3:i + 1]
    else:
        del tokens[i]


def _substitute_immediate(tokens: list[Token], name: str) -> bool:
    numbers = _number_positions(tokens)
    if not numbers:
        return False
    for i in reversed(numbers[1:]):
        _drop_number(tokens, i)
    tokens[numbers[0]] = (name, TokenKind.SYMBOL)
    return True


def _substitute_displacement(tokens: list[Token], name: str) -> bool:
    numbers = [
        i for i in _number_positions(tokens) if not (i > 0 and tokens[i - 1][0] == "*")
    ]
    if numbers:
        tokens[numbers[-1]] = (name, TokenKind.SYMBOL)
        return True
    # A zero displacement is not printed at all
    closes = [i for i, (text, _) in enumerate(tokens) if text == "]"]
    if not closes:
        return False
    at = closes[-1]
    opens = [i for i, (text, _) in enumerate(tokens[:at]) if text == "["]
    if opens and opens[-1] == at - 1:
        tokens.insert(at, (name, TokenKind.SYMBOL))
    else:
        tokens[at:at] = [
            (" ", TokenKind.TEXT),
            ("+", TokenKind.PUNCTUATION),
            (" ", TokenKind.TEXT),
            (name, TokenKind.SYMBOL),
        ]
    return True


def _substitute_anywhere(operands: list[list[Token]], name: str) -> None:
    """Replace the first number of the instruction and suppress the others."""
    replaced = False
    for tokens in operands:
        numbers = _number_positions(tokens)
        if not numbers:
            continue
        start = 0
        if not replaced:
            tokens[numbers[0]] = (name, TokenKind.SYMBOL)
            replaced = True
            start = 1
        for i in reversed(numbers[start:]):
            _drop_number(tokens, i)


def _relocated_operand(insn: capstone.CsInsn, fixup: int) -> tuple[int, bool] | None:
    """Locate the operand holding the fixup: ``(operand index, is_memory)``."""
    offset = fixup - insn.address
    imm_offset = getattr(insn, "imm_offset", 0)
    disp_offset = getattr(insn, "disp_offset", 0)
    if imm_offset and offset >= imm_offset:
        wanted = capstone.x86.X86_OP_IMM
    elif disp_offset and offset >= disp_offset:
        wanted = capstone.x86.X86_OP_MEM
    else:
        return None
    for i, op in enumerate(insn.operands):
        if op.type == wanted:
            return i, wanted == capstone.x86.X86_OP_MEM
    return None


def _substitute(insn: capstone.CsInsn, operands: list[list[Token]], fixup: int, name: str) -> None:
    located = _relocated_operand(insn, fixup)
    if located is not None and len(insn.operands) == len(operands):
        index, is_memory = located
        tokens = operands[index]
        done = (
            _substitute_displacement(tokens, name)
            if is_memory
            else _substitute_immediate(tokens, name)
        )
        if done:
            return
    _substitute_anywhere(operands, name)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_instruction(
    insn: capstone.CsInsn,
    options: DecoderOptions,
    fixup: int | None = None,
    target: Symbol | None = None,
) -> tuple[Token, ...]:
    """Render *insn* as tokens, substituting *target* at *fixup* if given."""
    tokens: list[Token] = []
    words = insn.mnemonic.split()
    for prefix in words[:-1]:
        tokens.append((prefix, TokenKind.PREFIX))
        tokens.append((" ", TokenKind.TEXT))
    tokens.append((words[-1] if words else insn.mnemonic, TokenKind.MNEMONIC))

    if not insn.op_str:
        return tuple(tokens)

    operands = [tokenize_operand(part) for part in insn.op_str.split(", ")]
    if target is not None and fixup is not None:
        _substitute(insn, operands, fixup, target.display_name)

    width = len(insn.mnemonic)
    tokens.append((" " * max(1, options.first_operand_column - width), TokenKind.TEXT))
    for i, operand in enumerate(operands):
        if i:
            tokens.append((",", TokenKind.PUNCTUATION))
            if options.space_after_operand_separator:
                tokens.append((" ", TokenKind.TEXT))
        tokens.extend(operand)
    return tuple(tokens)


def decode(
    data: bytes,
    address: int,
    bitness: int = 64,
    section: Section | None = None,
    symbols: dict[int, Symbol] | None = None,
    options: DecoderOptions | None = None,
) -> tuple[Instruction, ...]:
    """Decode *data* as x86 code starting at virtual address *address*.

    Decoding stops at the end of the buffer or at the first byte sequence
    that is not a complete instruction; everything before it is returned.

    Raises:
        ValueError: If *bitness* is not 16, 32 or 64.
    """
    if bitness not in _CS_MODES:
        raise ValueError(f"Unsupported x86 bitness: {bitness}")
    if not data:
        return ()
    options = options or DecoderOptions()
    symbols = symbols or {}

    md = capstone.Cs(capstone.CS_ARCH_X86, _CS_MODES[bitness])
    md.detail = True

    instructions = []
    for insn in md.disasm(data, address):
        start = insn.address - address
        raw = bytes(data[start:start + insn.size])
        resolved = resolve_relocation(section, insn.address, insn.size, symbols)
        fixup, target = resolved if resolved is not None else (None, None)
        instructions.append(
            Instruction(
                address=insn.address,
                bytes=raw,
                tokens=format_instruction(insn, options, fixup, target),
                relocation=target,
            )
        )
    return tuple(instructions)


def disassemble(
    symbol: Symbol,
    container: Container,
    options: DecoderOptions | None = None,
) -> Assembly | None:
    """Decode *symbol*'s estimated extent.

    Returns ``None`` ("assembly unavailable") when the symbol's bytes cannot
    be determined; an empty extent yields an empty :class:`Assembly`.
    """
    data = symbol.data()
    if data is None:
        return None
    options = options or DecoderOptions()
    bitness = options.bitness or container.bitness
    instructions = decode(
        data,
        symbol.address,
        bitness=bitness,
        section=symbol.section,
        symbols=container.symbols,
        options=options,
    )
    return Assembly(symbol=symbol, instructions=instructions)
