"""Schema model: immutable record descriptions.

A schema is an ordered tuple of fields. Construction validates every field
up front so that nothing downstream (packer, validator, optimizer) has to
deal with malformed input.
"""
from __future__ import annotations

from dataclasses import dataclass, field as dc_field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..types import DYNAMIC_MARKER, SLOT_BYTES, resolve_type
from .errors import DuplicateName, EmptySchema, InvalidField, UnsatisfiableConstraints


@dataclass(frozen=True, slots=True)
class Field:
    name: str
    width: int = SLOT_BYTES
    dynamic: bool = False
    group: Optional[str] = None
    locked_position: Optional[int] = None

    def __post_init__(self) -> None:
        # "" means ungrouped
        if self.group == "":
            object.__setattr__(self, "group", None)

    @property
    def scalar_width(self) -> int:
        return 0 if self.dynamic else self.width


def check_fields(fields: Sequence[Field]) -> None:
    """Raise InvalidField / DuplicateName for the first bad field found."""
    for f in fields:
        if not isinstance(f.name, str) or not f.name:
            raise InvalidField(f"field name must be a non-empty string: {f.name!r}", [str(f.name)])
        if isinstance(f.width, bool) or not isinstance(f.width, int):
            raise InvalidField(f"width of {f.name!r} must be an integer, got {f.width!r}", [f.name])
        if not f.dynamic and not 1 <= f.width <= SLOT_BYTES:
            raise InvalidField(f"width of {f.name!r} must be in [1,{SLOT_BYTES}], got {f.width}", [f.name])
        lp = f.locked_position
        if lp is not None and (isinstance(lp, bool) or not isinstance(lp, int) or lp < 0):
            raise InvalidField(f"locked position of {f.name!r} must be a non-negative integer, got {lp!r}", [f.name])
    seen: set[str] = set()
    for f in fields:
        if f.name in seen:
            raise DuplicateName(f"duplicate field name {f.name!r}", [f.name])
        seen.add(f.name)


@dataclass(frozen=True, slots=True)
class Schema:
    fields: tuple[Field, ...] = dc_field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))
        if not self.fields:
            raise EmptySchema("schema has no fields")
        check_fields(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self):  # noqa: ANN204
        return iter(self.fields)

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> Field:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    def groups(self) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {}
        for f in self.fields:
            if f.group is not None:
                out.setdefault(f.group, []).append(f.name)
        return out

    def locked(self) -> Dict[int, Field]:
        return {f.locked_position: f for f in self.fields if f.locked_position is not None}

    def reordered(self, names: Iterable[str]) -> "Schema":
        names = list(names)
        by_name = {f.name: f for f in self.fields}
        unknown = [n for n in names if n not in by_name]
        missing = [n for n in by_name if n not in names]
        if unknown or missing:
            raise InvalidField(
                f"ordering does not match schema (unknown: {unknown}, missing: {missing})", unknown + missing
            )
        return Schema(tuple(by_name[n] for n in names))

    def with_constraints(self, constraints: Optional[Mapping[str, object]]) -> "Schema":
        """Overlay ``{"groups": {g: [names]}, "locks": {name: index}}``."""
        if not constraints:
            return self
        groups = dict(constraints.get("groups") or {})  # type: ignore[arg-type]
        locks = dict(constraints.get("locks") or {})  # type: ignore[arg-type]
        by_name = {f.name: f for f in self.fields}
        unknown = [n for members in groups.values() for n in members if n not in by_name]
        unknown += [n for n in locks if n not in by_name]
        if unknown:
            raise InvalidField(f"constraints name unknown fields: {', '.join(sorted(set(unknown)))}", sorted(set(unknown)))
        group_of: Dict[str, str] = {}
        for g, members in groups.items():
            for n in members:
                if group_of.get(n, g) != g:
                    raise UnsatisfiableConstraints(
                        f"{n!r} is listed in groups {group_of[n]!r} and {g!r}", [n]
                    )
                group_of[n] = g
        out = []
        for f in self.fields:
            if f.name in group_of:
                f = replace(f, group=group_of[f.name])
            if f.name in locks:
                f = replace(f, locked_position=locks[f.name])
            out.append(f)
        return Schema(tuple(out))

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[object]]) -> "Schema":
        """Build from ``(name, width_or_marker[, group[, locked_index]])`` tuples."""
        fields = []
        for row in rows:
            if len(row) < 2:
                raise InvalidField(f"schema row needs at least a name and a width: {row!r}", [str(row[0]) if row else ""])
            name, spec = row[0], row[1]
            group = row[2] if len(row) > 2 else None
            locked = row[3] if len(row) > 3 else None
            fields.append(make_field(str(name), spec, group=group, locked=locked))  # type: ignore[arg-type]
        return cls(tuple(fields))


def make_field(name: str, spec: object, group: Optional[str] = None, locked: Optional[int] = None) -> Field:
    """Create a Field from an integer width, ``"dynamic"`` or a type name."""
    if isinstance(spec, str):
        if spec.strip().lower() == DYNAMIC_MARKER:
            return Field(name, SLOT_BYTES, True, group, locked)
        try:
            return Field(name, int(spec), False, group, locked)
        except ValueError:
            pass
        try:
            width, dynamic = resolve_type(spec)
        except InvalidField as e:
            raise InvalidField(f"field {name!r}: {e}", [name]) from e
        return Field(name, width, dynamic, group, locked)
    return Field(name, spec, False, group, locked)  # type: ignore[arg-type]
