"""Configuration helpers for slotpack.

Search knobs live here; cost weights live with the cost model
(``slotpack.core.cost.CostParams``).
"""
from __future__ import annotations

from dataclasses import dataclass

from .core.cost import CostParams
from .utils.env import env_bool, env_float, env_int


@dataclass(slots=True)
class SearchConfig:
    exact_threshold: int = 10  # max free units for the exact search
    search_budget: int = 250_000  # max DP states expanded before falling back
    workers: int = 1
    raise_on_fallback: bool = False

    @classmethod
    def from_env(cls) -> "SearchConfig":
        base = cls()
        return cls(
            exact_threshold=env_int("SLOTPACK_EXACT_THRESHOLD", base.exact_threshold, minimum=0),
            search_budget=env_int("SLOTPACK_SEARCH_BUDGET", base.search_budget, minimum=1),
            workers=env_int("SLOTPACK_WORKERS", base.workers, minimum=1),
            raise_on_fallback=env_bool("SLOTPACK_STRICT", base.raise_on_fallback),
        )


DEFAULT_SEARCH = SearchConfig()


def cost_params_from_env() -> CostParams:
    """CostParams with SLOTPACK_WARM_READ / SLOTPACK_WARM_WRITE / SLOTPACK_COLD overrides."""
    base = CostParams()
    return CostParams(
        warm_read=env_float("SLOTPACK_WARM_READ", base.warm_read),
        warm_write=env_float("SLOTPACK_WARM_WRITE", base.warm_write),
        cold_surcharge=env_float("SLOTPACK_COLD", base.cold_surcharge),
    )
