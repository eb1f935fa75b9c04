"""Packer: sequential slot assignment for an ordered field list.

Fields are placed left to right into 32-byte slots. A scalar joins the open
slot when it fits, otherwise a new slot is opened. A dynamic field closes
the open slot and takes a slot of its own. No reordering happens here.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import math

from ..types import SLOT_BYTES
from .model import Field, check_fields
from .schemas import LAYOUT_SCHEMA_VERSION, LayoutDoc, SlotEntry


@dataclass(frozen=True, slots=True)
class Occupant:
    name: str
    offset: int
    width: Optional[int]  # None: whole slot (dynamic)


@dataclass(frozen=True, slots=True)
class Slot:
    index: int
    occupants: Tuple[Occupant, ...]

    @property
    def dynamic(self) -> bool:
        return len(self.occupants) == 1 and self.occupants[0].width is None

    @property
    def used(self) -> int:
        if self.dynamic:
            return SLOT_BYTES
        return sum(int(o.width or 0) for o in self.occupants)

    @property
    def wasted(self) -> Optional[int]:
        """Trailing unused bytes; None for a dynamic slot."""
        if self.dynamic:
            return None
        return SLOT_BYTES - self.used

    def to_dict(self) -> SlotEntry:
        return {
            "index": self.index,
            "dynamic": self.dynamic,
            "occupants": [{"name": o.name, "offset": o.offset, "width": o.width} for o in self.occupants],
            "wasted": self.wasted,
        }


@dataclass(frozen=True, slots=True)
class Layout:
    slots: Tuple[Slot, ...]
    ordering: Tuple[str, ...]

    @property
    def slot_count(self) -> int:
        return len(self.slots)

    @property
    def wasted_bytes(self) -> int:
        return sum(s.wasted or 0 for s in self.slots)

    def positions(self) -> Dict[str, Tuple[int, int]]:
        return {o.name: (s.index, o.offset) for s in self.slots for o in s.occupants}

    def position_of(self, name: str) -> Tuple[int, int]:
        return self.positions()[name]

    def slot_of(self, name: str) -> int:
        return self.position_of(name)[0]

    def to_dict(self) -> LayoutDoc:
        return {
            "layout_version": LAYOUT_SCHEMA_VERSION,
            "ordering": list(self.ordering),
            "slot_count": self.slot_count,
            "slots": [s.to_dict() for s in self.slots],
        }


def place(used: int, f: Field) -> Tuple[bool, int, int]:
    """One packing step against an open slot holding ``used`` bytes.

    Returns ``(close_open, offset, used_after)``. ``close_open`` says the open
    slot (if occupied) is closed before placing ``f``. A dynamic field
    reports ``used_after`` of 0 because its slot is closed immediately.
    """
    if f.dynamic:
        return used > 0, 0, 0
    if used > 0 and f.width > SLOT_BYTES - used:
        return True, 0, f.width
    return False, used, used + f.width


def pack(fields: Sequence[Field]) -> Layout:
    fields = list(fields)
    check_fields(fields)
    slots: List[Slot] = []
    current: List[Occupant] = []
    used = 0

    def close() -> None:
        nonlocal current, used
        if current:
            slots.append(Slot(len(slots), tuple(current)))
        current, used = [], 0

    for f in fields:
        close_open, offset, used_after = place(used, f)
        if close_open:
            close()
        if f.dynamic:
            slots.append(Slot(len(slots), (Occupant(f.name, 0, None),)))
            continue
        current.append(Occupant(f.name, offset, f.width))
        used = used_after
    close()
    return Layout(tuple(slots), tuple(f.name for f in fields))


def lower_bound(fields: Sequence[Field]) -> int:
    scalar = sum(f.width for f in fields if not f.dynamic)
    dynamic = sum(1 for f in fields if f.dynamic)
    return math.ceil(scalar / SLOT_BYTES) + dynamic
