"""Best-effort symbol demangling.

Rust symbols (legacy ``_ZN...17h<hash>E`` and v0 ``_R...``) go through
``rust_demangler``; Itanium C++ (``_Z``) names go through ``cxxfilt``, which
calls the C++ runtime's ``__cxa_demangle``.  MSVC (``?``) names are handed to
``llvm-cxxfilt`` when it is on ``PATH``.  Mach-O prefixes every C-level name
with an extra ``_``, which is stripped before retrying.  Anything that fails
stays undemangled: :func:`demangle` returns ``None`` rather than raising.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from functools import lru_cache

import cxxfilt
import rust_demangler

logger = logging.getLogger(__name__)

_RUST_LEGACY = re.compile(r"^_ZN.*17h[0-9a-f]{16}E$")
_RUST_V0 = re.compile(r"^_R[0-9A-Za-z_]")

LLVM_CXXFILT = "llvm-cxxfilt"


def _demangle_rust(name: str) -> str | None:
    try:
        result = rust_demangler.demangle(name)
    except Exception:  # rust_demangler raises bare exceptions for foreign input
        return None
    if not result or result == name:
        return None
    return result


def _demangle_itanium(name: str) -> str | None:
    try:
        result = cxxfilt.demangle(name)
    except cxxfilt.InvalidName:
        return None
    if not result or result == name:
        return None
    return result


@lru_cache(maxsize=4096)
def _demangle_msvc(name: str) -> str | None:
    tool = shutil.which(LLVM_CXXFILT)
    if tool is None:
        return None
    try:
        proc = subprocess.run(
            [tool],
            input=name,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("%s failed on %s: %s", LLVM_CXXFILT, name, exc)
        return None
    if proc.returncode != 0:
        return None
    result = proc.stdout.strip()
    if not result or result == name:
        return None
    return result


def _candidates(name: str) -> list[str]:
    names = [name]
    if name.startswith("__Z") or name.startswith("__R") or name.startswith("_?"):
        names.append(name[1:])
    return names


def demangle(name: str) -> str | None:
    """Return the demangled form of *name*, or ``None`` if it is not mangled."""
    if not name:
        return None
    for candidate in _candidates(name):
        if _RUST_LEGACY.match(candidate) or _RUST_V0.match(candidate):
            result = _demangle_rust(candidate)
            if result is not None:
                return result
        if candidate.startswith("_Z"):
            result = _demangle_itanium(candidate)
            if result is not None:
                return result
        if candidate.startswith("?"):
            result = _demangle_msvc(candidate)
            if result is not None:
                return result
    return None
