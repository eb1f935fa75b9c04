"""Shared schema types for layouts and reports.

Define stable TypedDicts for interchange between components and the CLI.
"""
from __future__ import annotations

from typing import Dict, List, Optional

try:  # pragma: no cover - import shim for older interpreters
    from typing_extensions import TypedDict
except ImportError:  # pragma: no cover - fallback for Python >=3.12
    from typing import TypedDict  # type: ignore[misc, assignment]


# Versioning for layout documents produced by dump_layout
LAYOUT_SCHEMA_VERSION: str = "1"


class FieldSpec(TypedDict, total=False):
    name: str
    width: int | str
    type: str
    dynamic: bool
    group: Optional[str]
    locked: Optional[int]


class OccupantEntry(TypedDict):
    name: str
    offset: int
    width: Optional[int]


class SlotEntry(TypedDict):
    index: int
    dynamic: bool
    occupants: List[OccupantEntry]
    wasted: Optional[int]


class LayoutDoc(TypedDict, total=False):
    layout_version: str
    ordering: List[str]
    slot_count: int
    slots: List[SlotEntry]


class Summary(TypedDict, total=False):
    slot_count: int
    total_wasted_bytes: int
    lower_bound: int
    cost: float
    baseline_slot_count: int
    baseline_cost: float
    estimated_cost_delta: float
    exact: bool
    fallback: Optional[Dict[str, object]]
