"""Optimizer: choose a field order minimizing slot count, then cost.

The search space is every ordering that:
- keeps each locked field at its index and at its anchor ``(slot, offset)``
  (its placement in the baseline ordering),
- keeps the members of each group contiguous,
- keeps groups with locked members inside their reserved window.

Small instances are solved exactly by dynamic programming over placed
units; larger ones (or searches that run out of budget) use a first-fit
decreasing heuristic. Ties are broken by the ordering itself: at the first
position where two orderings differ, a scalar beats a dynamic field and
then the smaller name wins.
"""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import product
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from ..config import SearchConfig
from ..planner import bin_order
from ..telemetry.logging import get_logger
from ..telemetry.metrics import Timer
from ..types import SLOT_BYTES
from .cost import AccessProfile, CostParams, DEFAULT_COST, resolve_profile, score, transaction_index
from .errors import SearchBudgetExceeded, UnsatisfiableConstraints
from .model import Field, Schema
from .packer import Layout, lower_bound, pack, place
from .schemas import Summary
from .validate import constraint_problems

_EMPTY: frozenset[int] = frozenset()
_MISS = object()

# position kinds
_OPEN, _LOCK, _WINDOW = 0, 1, 2

Kind = Tuple[int, object]


@dataclass(frozen=True)
class _Unit:
    """Atomic search unit: a free field, or a whole group block."""

    uid: int
    fields: Tuple[Field, ...]
    reserved: Optional[str] = None  # group whose window this member fills

    @property
    def size(self) -> int:
        return len(self.fields)

    @property
    def key(self) -> str:
        return self.fields[0].name

    @property
    def scalar_bytes(self) -> int:
        return sum(f.scalar_width for f in self.fields)

    @property
    def has_dynamic(self) -> bool:
        return any(f.dynamic for f in self.fields)

    @property
    def dynamic_only(self) -> bool:
        return all(f.dynamic for f in self.fields)


@dataclass(frozen=True)
class OptimizeResult:
    fields: Tuple[Field, ...]
    layout: Layout
    cost: float
    input_slot_count: int
    input_cost: float
    lower_bound: int
    exact: bool
    fallback: Optional[SearchBudgetExceeded] = None

    @property
    def ordering(self) -> Tuple[str, ...]:
        return self.layout.ordering

    @property
    def slot_count(self) -> int:
        return self.layout.slot_count

    @property
    def wasted_bytes(self) -> int:
        return self.layout.wasted_bytes

    @property
    def cost_delta(self) -> float:
        return self.cost - self.input_cost

    def as_schema(self) -> Schema:
        """The chosen ordering as a fixed schema (locks and groups kept)."""
        return Schema(self.fields)

    def summary(self) -> Summary:
        return {
            "slot_count": self.slot_count,
            "total_wasted_bytes": self.wasted_bytes,
            "lower_bound": self.lower_bound,
            "cost": self.cost,
            "baseline_slot_count": self.input_slot_count,
            "baseline_cost": self.input_cost,
            "estimated_cost_delta": self.cost_delta,
            "exact": self.exact,
            "fallback": self.fallback.to_dict() if self.fallback is not None else None,
        }

    def to_dict(self) -> Dict[str, object]:
        return {"layout": self.layout.to_dict(), "summary": self.summary()}


class _BudgetHit(Exception):
    def __init__(self, expanded: int) -> None:
        super().__init__(expanded)
        self.expanded = expanded


class _SharedBudget:
    """State counter shared by the branch searches of one parallel solve."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.used = 0
        self._lock = threading.Lock()

    def spend(self) -> bool:
        with self._lock:
            self.used += 1
            return self.used <= self.limit


def _open_runs(kinds: Sequence[Kind]) -> List[int]:
    """Length of the run of open positions starting at each index."""
    out = [0] * (len(kinds) + 1)
    for p in range(len(kinds) - 1, -1, -1):
        out[p] = out[p + 1] + 1 if kinds[p][0] == _OPEN else 0
    return out[:-1]


def _runs(kinds: Sequence[Kind]) -> List[Tuple[int, int]]:
    runs: List[Tuple[int, int]] = []
    p = 0
    lengths = _open_runs(kinds)
    while p < len(kinds):
        if kinds[p][0] == _OPEN:
            runs.append((p, lengths[p]))
            p += lengths[p]
        else:
            p += 1
    return runs


def _assign_blocks(sizes: Sequence[int], caps: Sequence[int]) -> Optional[List[int]]:
    """Run index per block so every run holds its blocks; None if impossible."""
    order = sorted(range(len(sizes)), key=lambda i: (-sizes[i], i))
    out = [0] * len(sizes)
    dead: set = set()

    def go(k: int, left: Tuple[int, ...]) -> bool:
        if k == len(order):
            return True
        if (k, left) in dead:
            return False
        i = order[k]
        for r, c in enumerate(left):
            if c >= sizes[i]:
                out[i] = r
                if go(k + 1, left[:r] + (c - sizes[i],) + left[r + 1 :]):
                    return True
        dead.add((k, left))
        return False

    return out if go(0, tuple(caps)) else None


class _Search:
    """Exact DP over (position, placed units, slot index, open-slot fill, open-slot transactions)."""

    def __init__(
        self,
        kinds: Sequence[Kind],
        units: Sequence[_Unit],
        anchors: Mapping[str, Tuple[int, int]],
        profile: AccessProfile,
        params: CostParams,
        budget: int,
        shared: Optional[_SharedBudget] = None,
    ) -> None:
        self.kinds = list(kinds)
        self.units = list(units)
        self.anchors = dict(anchors)
        self.profile = profile
        self.params = params
        self.budget = budget
        self.shared = shared
        self.n = len(self.kinds)
        self.run = _open_runs(self.kinds)
        self.tx_of, self.weights = transaction_index(profile)
        self.memo: Dict[tuple, object] = {}
        self.expanded = 0
        self.by_name: Dict[str, Field] = {f.name: f for u in self.units for f in u.fields}
        for kind, val in self.kinds:
            if kind == _LOCK:
                self.by_name[val.name] = val  # type: ignore[union-attr]

    def fork(self, shared: Optional[_SharedBudget] = None) -> "_Search":
        return _Search(self.kinds, self.units, self.anchors, self.profile, self.params, self.budget, shared)

    def _slot_cost(self, txs: frozenset[int]) -> float:
        return self.params.cold_surcharge * sum(self.weights[t] for t in txs)

    def _step(self, slot_idx: int, used: int, txs: frozenset[int], f: Field):
        close_open, offset, used_after = place(used, f)
        slots, cost = 0, 0.0
        if close_open:
            slots += 1
            cost += self._slot_cost(txs)
            slot_idx += 1
            txs = _EMPTY
        at = (slot_idx, offset)
        mine = self.tx_of.get(f.name, _EMPTY)
        if f.dynamic:
            slots += 1
            cost += self._slot_cost(mine)
            slot_idx += 1
            used = 0
        else:
            used = used_after
            txs = txs | mine
        anchor = self.anchors.get(f.name)
        if anchor is not None and anchor != at:
            return None
        return slot_idx, used, txs, slots, cost

    def _options(self, p: int, mask: int) -> List[Tuple[int, Tuple[Field, ...]]]:
        kind, val = self.kinds[p]
        if kind == _LOCK:
            return [(-1, (val,))]  # type: ignore[list-item]
        out = []
        for u in self.units:
            if mask >> u.uid & 1:
                continue
            if kind == _WINDOW:
                if u.reserved == val:
                    out.append((u.uid, u.fields))
            elif u.reserved is None and self.run[p] >= u.size:
                out.append((u.uid, u.fields))
        return out

    def _advance(self, p, mask, slot_idx, used, txs, uid, fields):  # noqa: ANN001, ANN202
        slots, cost = 0, 0.0
        for f in fields:
            st = self._step(slot_idx, used, txs, f)
            if st is None:
                return None
            slot_idx, used, txs, ds, dc = st
            slots += ds
            cost += dc
        nmask = mask | (1 << uid) if uid >= 0 else mask
        sub = self._best(p + len(fields), nmask, slot_idx, used, txs)
        if sub is None:
            return None
        head = tuple((f.dynamic, f.name) for f in fields)
        return slots + sub[0], cost + sub[1], head + sub[2]

    def _best(self, p: int, mask: int, slot_idx: int, used: int, txs: frozenset[int]):
        if p == self.n:
            if used:
                return 1, self._slot_cost(txs), ()
            return 0, 0.0, ()
        key = (p, mask, slot_idx if self.anchors else 0, used, txs)
        hit = self.memo.get(key, _MISS)
        if hit is not _MISS:
            return hit
        self.expanded += 1
        if self.expanded > self.budget or (self.shared is not None and not self.shared.spend()):
            raise _BudgetHit(self.expanded)
        best = None
        for uid, fields in self._options(p, mask):
            r = self._advance(p, mask, slot_idx, used, txs, uid, fields)
            if r is not None and (best is None or _dp_rank(r) < _dp_rank(best)):
                best = r
        self.memo[key] = best
        return best

    def solve(self, workers: int = 1) -> Optional[List[Field]]:
        if self.n == 0:
            return []
        if workers > 1:
            best = self._solve_parallel(workers)
        else:
            best = self._best(0, 0, 0, 0, _EMPTY)
        if best is None:
            return None
        return [self.by_name[name] for _, name in best[2]]

    def _solve_parallel(self, workers: int):  # noqa: ANN202
        """Fan the root's branches out over threads under one shared budget.

        Branches do not share memos, so together they expand at least as many
        states as a serial search (root excluded). Finishing within
        ``budget - 1`` therefore means the serial search finishes too, and
        the state count reported is the serial one: the union of the branch
        memos plus the root. Running out settles the question serially.
        """
        shared = _SharedBudget(self.budget - 1)

        def branch(opt):  # noqa: ANN001, ANN202
            s = self.fork(shared)
            try:
                return s._advance(0, 0, 0, 0, _EMPTY, opt[0], opt[1]), s
            except _BudgetHit:
                return None, None

        with ThreadPoolExecutor(max_workers=workers) as ex:
            outcomes = list(ex.map(branch, self._options(0, 0)))
        if any(s is None for _, s in outcomes):
            self.memo.clear()
            self.expanded = 0
            return self._best(0, 0, 0, 0, _EMPTY)
        self.expanded = len(set().union(*(s.memo for _, s in outcomes))) + 1
        best = None
        for r, _ in outcomes:
            if r is not None and (best is None or _dp_rank(r) < _dp_rank(best)):
                best = r
        return best


def _dp_rank(r):  # noqa: ANN001, ANN202
    return r[0], round(r[1], 6), r[2]


def _heuristic(kinds: Sequence[Kind], units: Sequence[_Unit]) -> Optional[List[Field]]:
    """First-fit decreasing scalars, then oversize/mixed blocks, then dynamics."""
    free = [u for u in units if u.reserved is None]
    small = [u for u in free if not u.has_dynamic and u.scalar_bytes <= SLOT_BYTES]
    small_ids = {u.uid for u in small}
    big = sorted((u for u in free if u.uid not in small_ids and not u.dynamic_only), key=lambda u: u.key)
    dyn = sorted((u for u in free if u.dynamic_only), key=lambda u: u.key)
    by_uid = {u.uid: u for u in units}
    df = pd.DataFrame(
        {
            "unit": [u.uid for u in small],
            "nbytes": [u.scalar_bytes for u in small],
            "key": [u.key for u in small],
        }
    )
    queue = [by_uid[i] for i in bin_order(df)] + big + dyn

    reserved: Dict[str, List[_Unit]] = {}
    for u in sorted(
        (u for u in units if u.reserved is not None),
        key=lambda u: (u.has_dynamic, -u.scalar_bytes, u.key),
    ):
        reserved.setdefault(u.reserved, []).append(u)  # type: ignore[arg-type]

    run = _open_runs(kinds)
    order: List[Field] = []
    p = 0
    while p < len(kinds):
        kind, val = kinds[p]
        if kind == _LOCK:
            order.append(val)  # type: ignore[arg-type]
            p += 1
            continue
        if kind == _WINDOW:
            order.extend(reserved[val].pop(0).fields)  # type: ignore[index]
            p += 1
            continue
        for i, u in enumerate(queue):
            if u.size <= run[p]:
                break
        else:
            return None
        u = queue.pop(i)
        order.extend(u.fields)
        p += u.size
    return order


class _Planner:
    """Builds the constrained search space for one schema."""

    def __init__(self, schema: Schema, profile: AccessProfile, params: CostParams, config: SearchConfig) -> None:
        self.schema = schema
        self.profile = profile
        self.params = params
        self.config = config
        self.fallback: Optional[SearchBudgetExceeded] = None
        self.log = get_logger("Optimizer", {"fields": len(schema)})

    def note_fallback(self, exc: SearchBudgetExceeded) -> None:
        self.log.info("heuristic fallback: %s", exc)
        if self.fallback is None:
            self.fallback = exc

    # -- structural checks ---------------------------------------------------

    def locks(self) -> Dict[int, Field]:
        n = len(self.schema)
        locks: Dict[int, Field] = {}
        for f in self.schema.fields:
            lp = f.locked_position
            if lp is None:
                continue
            if lp >= n:
                raise UnsatisfiableConstraints(
                    f"{f.name!r} is locked to position {lp} but the schema has {n} fields", [f.name]
                )
            if lp in locks:
                raise UnsatisfiableConstraints(
                    f"{locks[lp].name!r} and {f.name!r} are both locked to position {lp}",
                    [locks[lp].name, f.name],
                )
            locks[lp] = f
        return locks

    def window_candidates(self, locks: Mapping[int, Field]) -> Dict[str, List[Tuple[int, int]]]:
        n = len(self.schema)
        out: Dict[str, List[Tuple[int, int]]] = {}
        for g, members in self.schema.groups().items():
            fs = [self.schema.get(m) for m in members]
            pinned = [f for f in fs if f.locked_position is not None]
            if not pinned:
                continue
            names = [f.name for f in pinned]
            m = len(fs)
            lo = min(f.locked_position for f in pinned)  # type: ignore[type-var]
            hi = max(f.locked_position for f in pinned)  # type: ignore[type-var]
            if hi - lo + 1 > m:
                raise UnsatisfiableConstraints(
                    f"locked members of group {g!r} span {hi - lo + 1} positions but the group has {m} members",
                    names,
                )
            foreign = [locks[p].name for p in range(lo, hi + 1) if p in locks and locks[p].group != g]
            if foreign:
                raise UnsatisfiableConstraints(
                    f"{', '.join(foreign)} locked inside group {g!r}", names + foreign
                )
            cands = []
            for s in range(max(0, hi - m + 1), lo + 1):
                e = s + m - 1
                if e >= n:
                    break
                if any(p in locks and locks[p].group != g for p in range(s, e + 1)):
                    continue
                cands.append((s, e))
            if not cands:
                raise UnsatisfiableConstraints(f"no room for group {g!r} around its locked members", names)
            out[g] = cands
        return out

    @staticmethod
    def kinds(n: int, locks: Mapping[int, Field], windows: Mapping[str, Tuple[int, int]]) -> List[Kind]:
        kinds: List[Kind] = [(_OPEN, None)] * n
        for p, f in locks.items():
            kinds[p] = (_LOCK, f)
        for g, (s, e) in windows.items():
            for p in range(s, e + 1):
                if kinds[p][0] != _LOCK:
                    kinds[p] = (_WINDOW, g)
        return kinds

    # -- units -----------------------------------------------------------------

    def order_block(self, members: Tuple[Field, ...]) -> Tuple[Field, ...]:
        """Best internal order of an unlocked group, optimized on its own."""
        if len(members) == 1:
            return members
        names = [f.name for f in members]
        units = [_Unit(i, (f,)) for i, f in enumerate(members)]
        kinds: List[Kind] = [(_OPEN, None)] * len(members)
        if len(units) <= self.config.exact_threshold:
            search = _Search(kinds, units, {}, self.profile.restrict(names), self.params, self.config.search_budget)
            try:
                found = search.solve()
                if found is not None:
                    return tuple(found)
            except _BudgetHit as e:
                self.note_fallback(SearchBudgetExceeded(
                    f"group {members[0].group!r}: exact search exceeded {self.config.search_budget} states",
                    names, reason="budget", expanded=e.expanded,
                ))
        else:
            self.note_fallback(SearchBudgetExceeded(
                f"group {members[0].group!r}: {len(units)} members exceed exact threshold {self.config.exact_threshold}",
                names, reason="threshold",
            ))
        return tuple(_heuristic(kinds, units) or members)

    def units(self, pinned: Sequence[str]) -> List[_Unit]:
        groups = self.schema.groups()
        units: List[_Unit] = []
        done: set[str] = set()
        for f in self.schema.fields:
            if f.locked_position is not None:
                continue
            if f.group is None:
                units.append(_Unit(len(units), (f,)))
            elif f.group in pinned:
                units.append(_Unit(len(units), (f,), reserved=f.group))
            elif f.group not in done:
                done.add(f.group)
                members = tuple(self.schema.get(m) for m in groups[f.group])
                units.append(_Unit(len(units), self.order_block(members)))
        return units

    # -- baseline ----------------------------------------------------------------

    def arrange(self, kinds: Sequence[Kind], units: Sequence[_Unit]) -> Optional[List[Field]]:
        """Fill the free positions with units in input order, honoring runs and windows."""
        index = {f.name: i for i, f in enumerate(self.schema.fields)}
        runs = _runs(kinds)
        blocks = [u for u in units if u.reserved is None and u.size > 1]
        assignment = _assign_blocks([b.size for b in blocks], [length for _, length in runs])
        if assignment is None:
            return None
        singles = sorted((u for u in units if u.reserved is None and u.size == 1), key=lambda u: index[u.key])
        per_run: List[List[_Unit]] = [[] for _ in runs]
        for b, r in zip(blocks, assignment):
            per_run[r].append(b)
        for r, (_, length) in enumerate(runs):
            need = length - sum(u.size for u in per_run[r])
            per_run[r].extend(singles[:need])
            singles = singles[need:]
            per_run[r].sort(key=lambda u: min(index[f.name] for f in u.fields))
        reserved: Dict[str, List[_Unit]] = {}
        for u in sorted((u for u in units if u.reserved is not None), key=lambda u: index[u.key]):
            reserved.setdefault(u.reserved, []).append(u)  # type: ignore[arg-type]

        order: List[Optional[Field]] = [None] * len(kinds)
        for p, (kind, val) in enumerate(kinds):
            if kind == _LOCK:
                order[p] = val  # type: ignore[assignment]
            elif kind == _WINDOW:
                order[p] = reserved[val].pop(0).fields[0]  # type: ignore[index]
        for (start, _), members in zip(runs, per_run):
            p = start
            for u in members:
                for f in u.fields:
                    order[p] = f
                    p += 1
        return order  # type: ignore[return-value]

    def structure(self) -> Tuple[List[Kind], List[_Unit], List[Field]]:
        """Search space (position kinds, units) and the baseline ordering."""
        n = len(self.schema)
        locks = self.locks()
        cands = self.window_candidates(locks)
        if not constraint_problems(self.schema.fields):
            # input order already honors every lock and group: it is the baseline
            pos = {f.name: i for i, f in enumerate(self.schema.fields)}
            groups = self.schema.groups()
            windows = {g: (pos[groups[g][0]], pos[groups[g][-1]]) for g in cands}
            kinds = self.kinds(n, locks, windows)
            return kinds, self.units(list(windows)), list(self.schema.fields)
        units = self.units(list(cands))
        for combo in product(*(cands[g] for g in cands)):
            windows = dict(zip(cands, combo))
            spans = sorted(windows.values())
            if any(a[1] >= b[0] for a, b in zip(spans, spans[1:])):
                continue
            kinds = self.kinds(n, locks, windows)
            baseline = self.arrange(kinds, units)
            if baseline is not None:
                return kinds, units, baseline
        raise UnsatisfiableConstraints(
            "locked positions leave no arrangement that keeps every group contiguous",
            [f.name for f in self.schema.fields if f.locked_position is not None or f.group is not None],
        )


def optimize(
    fields: Union[Schema, Sequence[Field]],
    constraints: Optional[Mapping[str, object]] = None,
    access_profile: Optional[AccessProfile] = None,
    *,
    params: Optional[CostParams] = None,
    config: Optional[SearchConfig] = None,
) -> OptimizeResult:
    schema = fields if isinstance(fields, Schema) else Schema(tuple(fields))
    schema = schema.with_constraints(constraints)
    params = params or DEFAULT_COST
    config = config or SearchConfig.from_env()
    profile = resolve_profile(access_profile, schema.names)

    planner = _Planner(schema, profile, params, config)
    log = planner.log
    with Timer("optimize") as t:
        kinds, units, baseline = planner.structure()
        locked = {f.name for f in schema.fields if f.locked_position is not None}
        anchors = {n: pos for n, pos in pack(baseline).positions().items() if n in locked}
        candidates: List[List[Field]] = [baseline]
        exact = False
        if len(units) <= config.exact_threshold:
            search = _Search(kinds, units, anchors, profile, params, config.search_budget)
            try:
                found = search.solve(config.workers)
                exact = True
                if found is not None:
                    candidates.append(found)
                log.debug("exact search: units=%d states=%d", len(units), search.expanded)
            except _BudgetHit as e:
                planner.note_fallback(SearchBudgetExceeded(
                    f"exact search exceeded {config.search_budget} states; returned heuristic layout",
                    reason="budget", expanded=e.expanded,
                ))
        else:
            planner.note_fallback(SearchBudgetExceeded(
                f"{len(units)} free units exceed exact threshold {config.exact_threshold}; returned heuristic layout",
                reason="threshold",
            ))
        if not exact:
            h = _heuristic(kinds, units)
            if h is not None:
                pos = pack(h).positions()
                if all(pos[n] == at for n, at in anchors.items()):
                    candidates.append(h)

        ranked = []
        for order in candidates:
            layout = pack(order)
            cost = score(layout, profile, params)
            ranked.append(((layout.slot_count, round(cost, 6), tuple((f.dynamic, f.name) for f in order)), order, layout, cost))
        _, order, layout, cost = min(ranked, key=lambda r: r[0])

        input_layout = pack(schema.fields)
        input_cost = score(input_layout, profile, params)
    log.debug("optimized: slots=%d (input %d) in %.2fms", layout.slot_count, input_layout.slot_count, t.millis)

    fallback = planner.fallback
    if fallback is not None and config.raise_on_fallback:
        raise fallback
    return OptimizeResult(
        fields=tuple(order),
        layout=layout,
        cost=cost,
        input_slot_count=input_layout.slot_count,
        input_cost=input_cost,
        lower_bound=lower_bound(schema.fields),
        exact=exact and fallback is None,
        fallback=fallback,
    )
