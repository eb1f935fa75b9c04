"""Storage type names and their slot widths.

Fixed-width names resolve to a byte width; anything whose size is not known
at definition time (``bytes``, ``string``, arrays, mappings) is dynamic.
"""
from __future__ import annotations

import re

from .core.errors import InvalidField

SLOT_BYTES = 32

DYNAMIC_MARKER = "dynamic"

_FIXED = {
    "bool": 1,
    "address": 20,
    "uint": 32,
    "int": 32,
    "byte": 1,
}

_INT_RE = re.compile(r"^u?int(\d+)$")
_BYTES_RE = re.compile(r"^bytes(\d+)$")


def is_dynamic_name(type_name: str) -> bool:
    t = type_name.strip().lower()
    return (
        t == DYNAMIC_MARKER
        or t in ("bytes", "string")
        or t.endswith("[]")
        or t.startswith("mapping(")
    )


def resolve_type(type_name: str) -> tuple[int, bool]:
    """Return ``(width, dynamic)`` for a storage type name.

    Dynamic types report a full slot width for bookkeeping.
    """
    t = type_name.strip().lower()
    if is_dynamic_name(t):
        return SLOT_BYTES, True
    if t in _FIXED:
        return _FIXED[t], False
    m = _INT_RE.match(t)
    if m:
        bits = int(m.group(1))
        if bits % 8 or not 8 <= bits <= 256:
            raise InvalidField(f"bad integer size in type {type_name!r}")
        return bits // 8, False
    m = _BYTES_RE.match(t)
    if m:
        n = int(m.group(1))
        if not 1 <= n <= SLOT_BYTES:
            raise InvalidField(f"bad fixed bytes size in type {type_name!r}")
        return n, False
    raise InvalidField(f"unknown storage type {type_name!r}")


def known_types() -> dict[str, int | str]:
    """Table of representative type names (for the CLI ``types`` command)."""
    out: dict[str, int | str] = dict(_FIXED)
    for bits in (8, 16, 32, 64, 128, 256):
        out[f"uint{bits}"] = bits // 8
        out[f"int{bits}"] = bits // 8
    for n in (1, 4, 8, 16, 20, 32):
        out[f"bytes{n}"] = n
    for t in ("bytes", "string", "T[]", "mapping(K=>V)"):
        out[t] = DYNAMIC_MARKER
    return out
