"""Cost model: rank layouts by an estimated slot-access cost.

Warm costs are paid per declared read/write of a field. The cold surcharge
is paid once per distinct slot a transaction touches, so fields sharing a
slot amortize it. This is a deterministic scoring function, not a gas oracle.
"""
from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidField
from .packer import Layout


@dataclass(frozen=True, slots=True)
class CostParams:
    warm_read: float = 100.0
    warm_write: float = 2900.0
    cold_surcharge: float = 2100.0


DEFAULT_COST = CostParams()


@dataclass(frozen=True, slots=True)
class Transaction:
    fields: Tuple[str, ...]
    weight: float = 1.0


@dataclass(frozen=True, slots=True)
class AccessProfile:
    frequencies: Mapping[str, Tuple[float, float]] = dc_field(default_factory=dict)
    transactions: Tuple[Transaction, ...] = ()

    @classmethod
    def uniform(cls, names: Iterable[str]) -> "AccessProfile":
        names = tuple(names)
        return cls({n: (1.0, 1.0) for n in names}, (Transaction(names),))

    def effective_transactions(self) -> Tuple[Transaction, ...]:
        """Declared transactions, or one implicit transaction over accessed fields."""
        if self.transactions:
            return self.transactions
        active = tuple(n for n, (r, w) in self.frequencies.items() if r or w)
        return (Transaction(active),) if active else ()

    def names(self) -> set[str]:
        out = set(self.frequencies)
        for tx in self.transactions:
            out.update(tx.fields)
        return out

    def restrict(self, names: Iterable[str]) -> "AccessProfile":
        keep = set(names)
        freqs = {n: rw for n, rw in self.frequencies.items() if n in keep}
        txs = tuple(
            Transaction(tuple(n for n in tx.fields if n in keep), tx.weight)
            for tx in self.transactions
        )
        return AccessProfile(freqs, tuple(tx for tx in txs if tx.fields))

    def check(self, known: Iterable[str]) -> None:
        unknown = sorted(self.names() - set(known))
        if unknown:
            raise InvalidField(f"access profile names unknown fields: {', '.join(unknown)}", unknown)


def resolve_profile(profile: Optional[AccessProfile], names: Sequence[str]) -> AccessProfile:
    if profile is None:
        return AccessProfile.uniform(names)
    profile.check(names)
    return profile


def warm_cost(profile: AccessProfile, params: CostParams = DEFAULT_COST) -> float:
    """Order-independent part of the score."""
    if not profile.frequencies:
        return 0.0
    rw = np.asarray(list(profile.frequencies.values()), dtype=np.float64).reshape(-1, 2)
    return float((rw @ np.array([params.warm_read, params.warm_write], dtype=np.float64)).sum())


def transaction_index(profile: AccessProfile) -> Tuple[Dict[str, frozenset[int]], Tuple[float, ...]]:
    """Map field -> ids of transactions touching it, plus per-transaction weights."""
    txs = profile.effective_transactions()
    member: Dict[str, set[int]] = {}
    for i, tx in enumerate(txs):
        for n in tx.fields:
            member.setdefault(n, set()).add(i)
    return {n: frozenset(ids) for n, ids in member.items()}, tuple(float(tx.weight) for tx in txs)


def cold_cost(layout: Layout, profile: AccessProfile, params: CostParams = DEFAULT_COST) -> float:
    slot_of = {name: pos[0] for name, pos in layout.positions().items()}
    total = 0.0
    for tx in profile.effective_transactions():
        touched = {slot_of[n] for n in tx.fields if n in slot_of}
        total += float(tx.weight) * params.cold_surcharge * len(touched)
    return total


def score(layout: Layout, access_profile: Optional[AccessProfile] = None, params: CostParams = DEFAULT_COST) -> float:
    profile = resolve_profile(access_profile, layout.ordering)
    return warm_cost(profile, params) + cold_cost(layout, profile, params)
