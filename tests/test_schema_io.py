from __future__ import annotations

import json
from pathlib import Path

import pytest

from slotpack.core.errors import InvalidField
from slotpack.core.packer import pack
from slotpack.schema_io import (
    dump_layout,
    layout_to_frame,
    load_layout_ordering,
    load_profile,
    load_schema,
)


def _write(path: Path, doc) -> Path:
    path.write_text(json.dumps(doc))
    return path


def test_load_schema_with_types_and_constraints(tmp_path: Path):
    p = _write(tmp_path / "s.json", {
        "fields": [
            {"name": "owner", "type": "address"},
            {"name": "isActive", "type": "bool"},
            {"name": "tags", "width": "dynamic"},
            {"name": "balance", "width": 32, "locked": 0},
            {"name": "memo", "dynamic": True},
        ],
        "constraints": {"groups": {"hot": ["owner", "isActive"]}},
    })
    s = load_schema(p)
    assert s.names == ["owner", "isActive", "tags", "balance", "memo"]
    assert s.get("owner").width == 20
    assert s.get("tags").dynamic and s.get("memo").dynamic
    assert s.get("balance").locked_position == 0
    assert s.groups() == {"hot": ["owner", "isActive"]}


def test_load_schema_from_rows(tmp_path: Path):
    p = _write(tmp_path / "rows.json", {"fields": [["a", 20], ["b", "uint8", "g"], ["c", "string", None, 2]]})
    s = load_schema(p)
    assert [f.width for f in s] == [20, 1, 32]
    assert s.get("c").locked_position == 2


def test_field_without_width(tmp_path: Path):
    p = _write(tmp_path / "bad.json", {"fields": [{"name": "a"}]})
    with pytest.raises(InvalidField):
        load_schema(p)


def test_load_profile_variants(tmp_path: Path):
    embedded = _write(tmp_path / "s.json", {
        "fields": [{"name": "a", "width": 1}],
        "profile": {"frequencies": {"a": [3, 1]}, "transactions": [{"fields": ["a"], "weight": 2}]},
    })
    prof = load_profile(embedded)
    assert prof is not None
    assert prof.frequencies["a"] == (3.0, 1.0)
    assert prof.transactions[0].weight == 2.0

    standalone = _write(tmp_path / "p.json", {"frequencies": {"a": {"reads": 5}}})
    assert load_profile(standalone).frequencies["a"] == (5.0, 0.0)

    bare = _write(tmp_path / "bare.json", {"fields": [{"name": "a", "width": 1}]})
    assert load_profile(bare) is None


def test_malformed_profile_entries(tmp_path: Path):
    for profile in (
        {"frequencies": {"a": [1]}},
        {"frequencies": {"a": ["x", 1]}},
        {"frequencies": {"a": {"reads": "many"}}},
        {"frequencies": [["a", 1, 1]]},
        {"transactions": [{"weight": 2}]},
        {"transactions": [{"fields": ["a"], "weight": "heavy"}]},
        ["a"],
    ):
        path = _write(tmp_path / "p.json", {"fields": [{"name": "a", "width": 1}], "profile": profile})
        with pytest.raises(InvalidField):
            load_profile(path)


def test_malformed_field_entries(tmp_path: Path):
    bad = _write(tmp_path / "w.json", {"fields": [{"name": "d", "dynamic": True, "width": "abc"}]})
    with pytest.raises(InvalidField) as exc:
        load_schema(bad)
    assert exc.value.names == ("d",)
    with pytest.raises(InvalidField):
        load_schema(_write(tmp_path / "f.json", {"fields": {"a": 1}}))
    with pytest.raises(InvalidField):
        load_layout_ordering(_write(tmp_path / "l.json", {"slots": []}))


def test_layout_frame_and_dump(tmp_path: Path):
    from slotpack.core.model import Field

    layout = pack([Field("a", 8), Field("d", 32, dynamic=True), Field("b", 4)])
    df = layout_to_frame(layout)
    assert list(df.columns) == ["slot", "name", "offset", "width", "dynamic"]
    assert df["slot"].tolist() == [0, 1, 2]
    assert df["dynamic"].tolist() == [False, True, False]

    out = tmp_path / "layout.json"
    dump_layout(layout, out, {"slot_count": 3})
    doc = json.loads(out.read_text())
    assert doc["summary"]["slot_count"] == 3
    assert doc["slots"][1]["wasted"] is None
    assert load_layout_ordering(out) == ["a", "d", "b"]
