"""Planner helpers for the heuristic ordering.

First-fit decreasing over scalar units, on a pandas DataFrame in/out like
the rest of the planning code.
"""
from __future__ import annotations

import numpy as np
import pandas as pd

from .types import SLOT_BYTES


def pack_bins(units_df: pd.DataFrame, bin_bytes: int = SLOT_BYTES) -> pd.DataFrame:
    """First-fit decreasing bin pack.

    Expects columns ``[unit, nbytes, key]``. Sort by size desc (ties by
    ``key``); place each unit into the first bin that fits, otherwise open a
    new bin. Returns a copy with a new ``bin_id`` col, in placement order.
    """
    df = units_df.sort_values("key", kind="mergesort")
    df = df.sort_values("nbytes", ascending=False, kind="mergesort").reset_index(drop=True)
    n = len(df)
    bin_id = np.empty(n, dtype=np.int64)
    # Track remaining capacity per bin
    remaining: list[int] = []
    for i in range(n):
        size = int(df["nbytes"].iat[i])
        placed = False
        for b_idx in range(len(remaining)):
            if remaining[b_idx] >= size:
                bin_id[i] = b_idx
                remaining[b_idx] -= size
                placed = True
                break
        if not placed:
            # open a new bin
            bin_id[i] = len(remaining)
            remaining.append(bin_bytes - size)
    df = df.copy()
    df["bin_id"] = bin_id
    return df


def bin_order(units_df: pd.DataFrame, bin_bytes: int = SLOT_BYTES) -> list[int]:
    """Unit ids in bin order, members of a bin in placement order."""
    if units_df.empty:
        return []
    packed = pack_bins(units_df, bin_bytes)
    packed["seq"] = np.arange(len(packed))
    packed = packed.sort_values(["bin_id", "seq"], kind="mergesort")
    return [int(u) for u in packed["unit"].tolist()]
