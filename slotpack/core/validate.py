"""Validator: audit a hand-written field order without reordering it."""
from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from typing import Any, Dict, List, Optional, Sequence, Union

from ..types import SLOT_BYTES
from .model import Field, Schema
from .packer import Layout, lower_bound, pack


@dataclass(frozen=True, slots=True)
class ValidationReport:
    layout: Layout
    wasted_bytes: int
    slot_count: int
    slot_waste: tuple[Optional[int], ...]
    lower_bound: int
    problems: List[dict] = dc_field(default_factory=list)
    warnings: List[dict] = dc_field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems

    def __iter__(self):  # noqa: ANN204
        # unpacks as (layout, wasted_bytes, slot_count)
        return iter((self.layout, self.wasted_bytes, self.slot_count))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layout": self.layout.to_dict(),
            "slot_count": self.slot_count,
            "total_wasted_bytes": self.wasted_bytes,
            "slot_waste": list(self.slot_waste),
            "lower_bound": self.lower_bound,
            "problems": self.problems,
            "warnings": self.warnings,
        }


def constraint_problems(fields: Sequence[Field]) -> List[dict]:
    """Lock and group violations of a fixed order."""
    problems: List[dict] = []
    for i, f in enumerate(fields):
        if f.locked_position is not None and f.locked_position != i:
            problems.append({
                "field": f.name,
                "error": f"locked to position {f.locked_position} but found at {i}",
            })
    positions: Dict[str, List[int]] = {}
    for i, f in enumerate(fields):
        if f.group is not None:
            positions.setdefault(f.group, []).append(i)
    for g, idx in positions.items():
        if idx[-1] - idx[0] + 1 != len(idx):
            problems.append({
                "group": g,
                "error": "group members are not contiguous",
                "names": [fields[i].name for i in idx],
            })
    return problems


def validate(fields: Union[Schema, Sequence[Field]]) -> ValidationReport:
    schema = fields if isinstance(fields, Schema) else Schema(tuple(fields))
    layout = pack(schema.fields)
    lb = lower_bound(schema.fields)
    waste = tuple(s.wasted for s in layout.slots)
    warnings_: List[dict] = []
    if layout.slot_count > lb:
        warnings_.append({
            "warning": "slot count above lower bound; a reordering may save slots",
            "slot_count": layout.slot_count,
            "lower_bound": lb,
        })
    return ValidationReport(
        layout=layout,
        wasted_bytes=layout.wasted_bytes,
        slot_count=layout.slot_count,
        slot_waste=waste,
        lower_bound=lb,
        problems=constraint_problems(schema.fields),
        warnings=warnings_,
    )


def verify_layout(layout: Layout) -> List[dict]:
    """Structural checks on a Layout value; returns a list of problems."""
    problems: List[dict] = []
    seen: set[str] = set()
    for expect, s in enumerate(layout.slots):
        if s.index != expect:
            problems.append({"slot": s.index, "error": f"slot index out of sequence (expected {expect})"})
        if not s.occupants:
            problems.append({"slot": s.index, "error": "empty slot"})
            continue
        has_dynamic = any(o.width is None for o in s.occupants)
        if has_dynamic and len(s.occupants) > 1:
            problems.append({"slot": s.index, "error": "dynamic field shares its slot",
                             "names": [o.name for o in s.occupants]})
        cursor = 0
        for o in s.occupants:
            if o.name in seen:
                problems.append({"slot": s.index, "error": f"{o.name} placed twice"})
            seen.add(o.name)
            if o.width is None:
                continue
            if o.offset != cursor:
                problems.append({"slot": s.index, "error": f"{o.name} at offset {o.offset}, expected {cursor}"})
            cursor = o.offset + o.width
            if cursor > SLOT_BYTES:
                problems.append({"slot": s.index, "error": f"{o.name} overflows slot ({cursor} > {SLOT_BYTES})"})
    if seen != set(layout.ordering):
        problems.append({"error": "slot occupants do not match ordering"})
    return problems
