from __future__ import annotations

import pytest

from slotpack.core.errors import DuplicateName, EmptySchema, InvalidField, UnsatisfiableConstraints
from slotpack.core.model import Field, Schema, make_field


def test_schema_rejects_bad_widths():
    with pytest.raises(InvalidField) as e:
        Schema((Field("a", 0),))
    assert e.value.names == ("a",)
    with pytest.raises(InvalidField):
        Schema((Field("a", 33),))
    with pytest.raises(InvalidField):
        Schema((Field("a", True),))  # type: ignore[arg-type]


def test_dynamic_width_is_not_range_checked():
    s = Schema((Field("tags", 0, dynamic=True), Field("n", 1)))
    assert s.get("tags").scalar_width == 0


def test_schema_duplicate_and_empty():
    with pytest.raises(DuplicateName) as e:
        Schema((Field("a", 1), Field("a", 2)))
    assert e.value.names == ("a",)
    with pytest.raises(EmptySchema):
        Schema(())


def test_negative_lock_is_invalid():
    with pytest.raises(InvalidField):
        Schema((Field("a", 1, locked_position=-1),))


def test_from_rows_accepts_markers_and_type_names():
    s = Schema.from_rows([
        ("owner", "address"),
        ("isActive", "bool", "flags"),
        ("tags", "dynamic"),
        ("balance", 32, None, 0),
        ("nonce", "8"),
    ])
    assert [f.width for f in s] == [20, 1, 32, 32, 8]
    assert s.get("tags").dynamic
    assert s.get("isActive").group == "flags"
    assert s.get("balance").locked_position == 0
    assert s.locked() == {0: s.get("balance")}


def test_empty_group_means_ungrouped():
    assert Field("a", 1, group="").group is None


def test_groups_keep_input_order():
    s = Schema((Field("b", 1, group="g"), Field("x", 1), Field("a", 1, group="g")))
    assert s.groups() == {"g": ["b", "a"]}


def test_with_constraints_overlays_fields():
    s = Schema((Field("a", 1), Field("b", 1), Field("c", 1)))
    s2 = s.with_constraints({"groups": {"hot": ["a", "c"]}, "locks": {"b": 0}})
    assert s2.get("a").group == "hot"
    assert s2.get("c").group == "hot"
    assert s2.get("b").locked_position == 0
    assert s.get("a").group is None  # original untouched
    with pytest.raises(InvalidField):
        s.with_constraints({"locks": {"zzz": 1}})


def test_with_constraints_rejects_field_in_two_groups():
    s = Schema((Field("a", 1), Field("b", 1), Field("c", 1)))
    with pytest.raises(UnsatisfiableConstraints) as exc:
        s.with_constraints({"groups": {"hot": ["a", "b"], "cold": ["b", "c"]}})
    assert exc.value.names == ("b",)


def test_reordered_requires_same_names():
    s = Schema((Field("a", 1), Field("b", 1)))
    assert s.reordered(["b", "a"]).names == ["b", "a"]
    with pytest.raises(InvalidField):
        s.reordered(["a"])


def test_make_field_unknown_type():
    with pytest.raises(InvalidField) as e:
        make_field("x", "float64")
    assert e.value.names == ("x",)
