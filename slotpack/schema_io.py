"""Schema, access-profile and layout documents.

A schema document is JSON::

    {"fields": [{"name": "owner", "type": "address"},
                {"name": "tags", "width": "dynamic", "group": "meta"},
                {"name": "balance", "width": 32, "locked": 0}],
     "constraints": {"groups": {...}, "locks": {...}},
     "profile": {"frequencies": {"owner": [10, 1]},
                 "transactions": [{"fields": ["owner", "balance"], "weight": 5}]}}

``fields`` may also be a list of ``[name, width_or_type, group, locked]`` rows.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional
import json
import os

import pandas as pd

from .core.cost import AccessProfile, Transaction
from .core.errors import InvalidField
from .core.model import Field, Schema, make_field
from .core.packer import Layout
from .core.schemas import FieldSpec, Summary


def _number(value: Any, what: str, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidField(f"{what} of {name!r} must be a number, got {value!r}", [name]) from None


def field_from_spec(spec: FieldSpec) -> Field:
    if not isinstance(spec, Mapping) or "name" not in spec:
        raise InvalidField(f"field entry without a name: {spec!r}")
    name = str(spec["name"])
    group = spec.get("group")
    locked = spec.get("locked")
    if "type" in spec:
        f = make_field(name, str(spec["type"]), group=group, locked=locked)
    elif spec.get("dynamic"):
        width = spec.get("width", 32)
        if isinstance(width, bool) or not isinstance(width, (int, str)) or not str(width).isdigit():
            raise InvalidField(f"width of dynamic field {name!r} must be an integer, got {width!r}", [name])
        f = Field(name, int(width), True, group, locked)
    elif "width" in spec:
        f = make_field(name, spec["width"], group=group, locked=locked)
    else:
        raise InvalidField(f"field {name!r} needs a width or a type", [name])
    return f


def schema_from_doc(doc: Any) -> Schema:
    entries = doc.get("fields", []) if isinstance(doc, Mapping) else doc
    if not isinstance(entries, list):
        raise InvalidField(f"'fields' must be a list, got {type(entries).__name__}")
    rows = [e for e in entries if not isinstance(e, Mapping)]
    if rows and len(rows) == len(entries):
        if any(not isinstance(r, (list, tuple)) for r in rows):
            raise InvalidField(f"schema rows must be lists: {rows!r}")
        schema = Schema.from_rows(rows)
    else:
        schema = Schema(tuple(field_from_spec(e) for e in entries))
    if isinstance(doc, Mapping) and doc.get("constraints"):
        schema = schema.with_constraints(doc["constraints"])
    return schema


def profile_from_doc(doc: Mapping[str, Any]) -> AccessProfile:
    if not isinstance(doc, Mapping):
        raise InvalidField(f"access profile must be an object, got {type(doc).__name__}")
    freqs: Dict[str, tuple[float, float]] = {}
    frequencies = doc.get("frequencies") or {}
    if not isinstance(frequencies, Mapping):
        raise InvalidField(f"profile frequencies must be an object, got {frequencies!r}")
    for name, rw in frequencies.items():
        if isinstance(rw, Mapping):
            freqs[name] = (_number(rw.get("reads", 0), "reads", name), _number(rw.get("writes", 0), "writes", name))
        elif isinstance(rw, (list, tuple)) and len(rw) == 2:
            freqs[name] = (_number(rw[0], "reads", name), _number(rw[1], "writes", name))
        else:
            raise InvalidField(f"frequency of {name!r} must be [reads, writes], got {rw!r}", [name])
    txs = []
    for i, tx in enumerate(doc.get("transactions") or []):
        members = tx.get("fields") if isinstance(tx, Mapping) else None
        if not isinstance(members, list):
            raise InvalidField(f"transaction {i} needs a 'fields' list: {tx!r}")
        weight = tx.get("weight", 1.0)
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            raise InvalidField(f"transaction {i} weight must be a number, got {weight!r}")
        txs.append(Transaction(tuple(str(n) for n in members), float(weight)))
    return AccessProfile(freqs, tuple(txs))


def _read(path: os.PathLike[str] | str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_schema(path: os.PathLike[str] | str) -> Schema:
    return schema_from_doc(_read(path))


def load_profile(path: os.PathLike[str] | str) -> Optional[AccessProfile]:
    """Profile from a standalone profile file or a schema file's ``profile`` key."""
    doc = _read(path)
    if isinstance(doc, Mapping) and "profile" in doc:
        doc = doc["profile"]
    elif not (isinstance(doc, Mapping) and ("frequencies" in doc or "transactions" in doc)):
        return None
    return profile_from_doc(doc)


def layout_to_frame(layout: Layout) -> pd.DataFrame:
    """Columns: [slot, name, offset, width, dynamic]."""
    rows = []
    for s in layout.slots:
        for o in s.occupants:
            rows.append(
                {
                    "slot": s.index,
                    "name": o.name,
                    "offset": o.offset,
                    "width": o.width if o.width is not None else 32,
                    "dynamic": o.width is None,
                }
            )
    return pd.DataFrame(rows, columns=["slot", "name", "offset", "width", "dynamic"])


def layout_doc(layout: Layout, summary: Optional[Summary] = None) -> Dict[str, Any]:
    doc: Dict[str, Any] = dict(layout.to_dict())
    if summary is not None:
        doc["summary"] = dict(summary)
    return doc


def dump_layout(layout: Layout, path: os.PathLike[str] | str, summary: Optional[Summary] = None) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(layout_doc(layout, summary), f, indent=2)


def load_layout_ordering(path: os.PathLike[str] | str) -> List[str]:
    doc = _read(path)
    ordering = doc.get("ordering") if isinstance(doc, Mapping) else None
    if not isinstance(ordering, list):
        raise InvalidField(f"layout file {os.fspath(path)!r} has no 'ordering' list")
    return [str(n) for n in ordering]
