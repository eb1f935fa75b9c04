from __future__ import annotations

import argparse
import json
import random

from slotpack.config import SearchConfig
from slotpack.core.model import Field
from slotpack.core.optimize import optimize
from slotpack.telemetry.metrics import Timer


def random_schema(n: int, seed: int) -> list[Field]:
    rng = random.Random(seed)
    out = []
    for i in range(n):
        if rng.random() < 0.15:
            out.append(Field(f"f{i}", 32, dynamic=True))
        else:
            out.append(Field(f"f{i}", rng.choice([1, 2, 4, 8, 16, 20, 32])))
    return out


def run_once(n: int, seed: int, cfg: SearchConfig) -> dict:
    fields = random_schema(n, seed)
    with Timer("optimize") as t:
        res = optimize(fields, config=cfg)
    return {
        "fields": n,
        "seconds": t.elapsed,
        "slots": res.slot_count,
        "input_slots": res.input_slot_count,
        "lower_bound": res.lower_bound,
        "exact": res.exact,
    }


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--sizes", default="4,6,8,10,12,16")
    ap.add_argument("--repeat", type=int, default=3)
    ap.add_argument("--threshold", type=int, default=10)
    ap.add_argument("--workers", type=int, default=1)
    args = ap.parse_args()
    cfg = SearchConfig(exact_threshold=args.threshold, workers=args.workers)
    results = []
    for n in (int(x) for x in args.sizes.split(",")):
        for seed in range(args.repeat):
            results.append(run_once(n, seed, cfg))
    print(json.dumps({"runs": results}, indent=2))


if __name__ == "__main__":
    main()
