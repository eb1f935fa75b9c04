from __future__ import annotations

import itertools
import math
import random

import pytest

from slotpack.core.errors import DuplicateName, InvalidField
from slotpack.core.model import Field
from slotpack.core.packer import lower_bound, pack

OWNER = Field("owner", 20)
ACTIVE = Field("isActive", 1)
BALANCE = Field("balance", 32)


def _random_fields(rng: random.Random, n: int) -> list[Field]:
    out = []
    for i in range(n):
        if rng.random() < 0.2:
            out.append(Field(f"f{i}", 32, dynamic=True))
        else:
            out.append(Field(f"f{i}", rng.choice([1, 2, 4, 8, 12, 16, 20, 31, 32])))
    return out


def test_owner_active_share_a_slot():
    layout = pack([OWNER, ACTIVE, BALANCE])
    assert layout.slot_count == 2
    assert layout.position_of("owner") == (0, 0)
    assert layout.position_of("isActive") == (0, 20)
    assert layout.position_of("balance") == (1, 0)
    assert layout.slots[0].wasted == 11


def test_balance_first_is_also_two_slots():
    layout = pack([BALANCE, OWNER, ACTIVE])
    assert layout.slot_count == 2
    assert layout.position_of("balance") == (0, 0)
    assert layout.position_of("owner") == (1, 0)
    assert layout.position_of("isActive") == (1, 20)


def test_unpacked_order_takes_three_slots():
    layout = pack([OWNER, BALANCE, ACTIVE])
    assert layout.slot_count == 3
    assert layout.ordering == ("owner", "balance", "isActive")


def test_dynamic_field_isolated():
    layout = pack([Field("a", 8), Field("d", 32, dynamic=True), Field("b", 8)])
    assert layout.slot_count == 3
    s = layout.slots[1]
    assert s.dynamic
    assert s.occupants[0].width is None
    assert s.wasted is None


def test_consecutive_dynamics_and_leading_dynamic():
    layout = pack([Field("d1", 32, True), Field("d2", 32, True), Field("a", 1)])
    assert layout.slot_count == 3
    assert layout.position_of("a") == (2, 0)


def test_exact_fill():
    assert pack([Field("a", 16), Field("b", 16)]).slot_count == 1
    assert pack([Field("a", 16), Field("b", 17)]).slot_count == 2


def test_empty_input_gives_empty_layout():
    assert pack([]).slot_count == 0


def test_pack_rejects_invalid():
    with pytest.raises(InvalidField):
        pack([Field("a", 0)])
    with pytest.raises(InvalidField):
        pack([Field("a", 40)])
    with pytest.raises(DuplicateName):
        pack([Field("a", 1), Field("a", 1)])


def test_lower_bound_formula():
    fields = [OWNER, ACTIVE, BALANCE, Field("t", 32, dynamic=True)]
    assert lower_bound(fields) == math.ceil(53 / 32) + 1


def test_every_permutation_respects_lower_bound():
    rng = random.Random(7)
    for _ in range(40):
        fields = _random_fields(rng, rng.randint(1, 6))
        lb = lower_bound(fields)
        for perm in itertools.permutations(fields):
            assert pack(perm).slot_count >= lb


def test_offsets_are_gapless():
    rng = random.Random(11)
    for _ in range(100):
        layout = pack(_random_fields(rng, rng.randint(1, 12)))
        for s in layout.slots:
            cursor = 0
            for o in s.occupants:
                if o.width is None:
                    assert len(s.occupants) == 1
                    continue
                assert o.offset == cursor
                cursor += o.width
            assert cursor <= 32
