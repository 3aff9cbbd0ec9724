"""asmview: object file and archive disassembly engine.

Parses ELF, Mach-O and COFF objects (bare or inside ``ar`` archives) into
an immutable container/section/symbol model, estimates code symbol extents,
resolves relocations back to symbols, and decodes x86 machine code into
role-classified instruction tokens with symbolic relocation targets.
"""

__version__ = "0.1.0"
