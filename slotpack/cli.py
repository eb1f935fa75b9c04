"""slotpack CLI."""
from __future__ import annotations

import argparse
import json
import sys

from .config import SearchConfig, cost_params_from_env
from .core.cost import CostParams, score
from .core.errors import SlotpackError
from .core.optimize import optimize
from .core.packer import lower_bound, pack
from .core.validate import validate, verify_layout
from .schema_io import (
    dump_layout,
    layout_doc,
    layout_to_frame,
    load_layout_ordering,
    load_profile,
    load_schema,
)
from .telemetry.logging import get_logger
from .types import known_types


def _print_layout(layout, header: str) -> None:  # noqa: ANN001
    print(header)
    frame = layout_to_frame(layout)
    if frame.empty:
        print("(empty)")
    else:
        print(frame.to_string(index=False))


def _cost_params(args: argparse.Namespace) -> CostParams:
    base = cost_params_from_env()
    return CostParams(
        warm_read=args.warm_read if args.warm_read is not None else base.warm_read,
        warm_write=args.warm_write if args.warm_write is not None else base.warm_write,
        cold_surcharge=args.cold if args.cold is not None else base.cold_surcharge,
    )


def _cmd_pack(args: argparse.Namespace) -> int:
    schema = load_schema(args.schema)
    layout = pack(schema.fields)
    if args.json:
        print(json.dumps(layout_doc(layout), indent=2))
        return 0
    _print_layout(layout, f"{layout.slot_count} slot(s), {layout.wasted_bytes} byte(s) wasted")
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    schema = load_schema(args.schema)
    if args.ordering:
        schema = schema.reordered(load_layout_ordering(args.ordering))
    report = validate(schema)
    problems = list(report.problems) + verify_layout(report.layout)
    out = report.to_dict()
    out["problems"] = problems
    if args.json:
        print(json.dumps(out, indent=2))
    else:
        _print_layout(
            report.layout,
            f"{report.slot_count} slot(s) (lower bound {report.lower_bound}), "
            f"{report.wasted_bytes} byte(s) wasted",
        )
        waste = ", ".join("n/a" if w is None else str(w) for w in report.slot_waste)
        print(f"waste per slot: {waste}")
        for p in problems:
            print(f"problem: {p}")
        for w in report.warnings:
            print(f"warning: {w['warning']}")
    if problems and args.strict:
        return 1
    return 0


def _cmd_optimize(args: argparse.Namespace) -> int:
    schema = load_schema(args.schema)
    profile = load_profile(args.profile) if args.profile else load_profile(args.schema)
    cfg = SearchConfig.from_env()
    if args.threshold is not None:
        cfg.exact_threshold = args.threshold
    if args.budget is not None:
        cfg.search_budget = args.budget
    if args.workers is not None:
        cfg.workers = args.workers
    cfg.raise_on_fallback = bool(args.strict)
    res = optimize(schema, access_profile=profile, params=_cost_params(args), config=cfg)
    if args.output:
        dump_layout(res.layout, args.output, res.summary())
    if args.json:
        print(json.dumps(res.to_dict(), indent=2))
        return 0
    _print_layout(
        res.layout,
        f"{res.slot_count} slot(s) (input order {res.input_slot_count}, lower bound {res.lower_bound})",
    )
    print(f"ordering: {', '.join(res.ordering)}")
    print(f"cost: {res.cost:.0f} (delta {res.cost_delta:+.0f} vs input order)")
    if res.fallback is not None:
        print(f"note: {res.fallback}")
    if args.output:
        print(f"Wrote layout: {args.output}")
    return 0


def _cmd_lower_bound(args: argparse.Namespace) -> int:
    schema = load_schema(args.schema)
    print(lower_bound(schema.fields))
    return 0


def _cmd_types(args: argparse.Namespace) -> int:
    table = known_types()
    if args.json:
        print(json.dumps(table, indent=2))
        return 0
    for name, width in table.items():
        print(f"{name:<16} {width}")
    return 0


def _cmd_score(args: argparse.Namespace) -> int:
    schema = load_schema(args.schema)
    profile = load_profile(args.profile) if args.profile else load_profile(args.schema)
    layout = pack(schema.fields)
    print(f"{score(layout, profile, _cost_params(args)):.0f}")
    return 0


def _add_cost_args(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--profile", default=None, help="Access profile JSON (defaults to the schema's 'profile' key)")
    sp.add_argument("--warm-read", type=float, default=None, help="Warm read cost per access")
    sp.add_argument("--warm-write", type=float, default=None, help="Warm write cost per access")
    sp.add_argument("--cold", type=float, default=None, help="Cold surcharge per slot per transaction")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="slotpack")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("pack", help="Pack a schema in its given order")
    sp.add_argument("schema", help="Schema JSON")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=_cmd_pack)

    sp = sub.add_parser("validate", help="Audit a fixed field order: slots, waste, constraint problems")
    sp.add_argument("schema", help="Schema JSON")
    sp.add_argument("--ordering", default=None, help="Layout JSON whose ordering to audit")
    sp.add_argument("--strict", action="store_true", help="Exit 1 when problems are found")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=_cmd_validate)

    sp = sub.add_parser("optimize", help="Search for a field order with fewer slots / lower cost")
    sp.add_argument("schema", help="Schema JSON")
    _add_cost_args(sp)
    sp.add_argument("--threshold", type=int, default=None, help="Max free units for exact search")
    sp.add_argument("--budget", type=int, default=None, help="Max search states before heuristic fallback")
    sp.add_argument("--workers", type=int, default=None, help="Threads for the exact search")
    sp.add_argument("--strict", action="store_true", help="Fail instead of returning a heuristic layout")
    sp.add_argument("--output", default=None, help="Write the layout JSON here")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=_cmd_optimize)

    sp = sub.add_parser("score", help="Cost of a schema in its given order")
    sp.add_argument("schema", help="Schema JSON")
    _add_cost_args(sp)
    sp.set_defaults(func=_cmd_score)

    sp = sub.add_parser("lower-bound", help="Minimum slots any ordering can use")
    sp.add_argument("schema", help="Schema JSON")
    sp.set_defaults(func=_cmd_lower_bound)

    sp = sub.add_parser("types", help="List known storage type widths")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=_cmd_types)
    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except SlotpackError as e:
        get_logger("cli").debug("command failed", exc_info=True)
        print(f"{e.kind}: {e}", file=sys.stderr)
        if e.names:
            print(f"fields: {', '.join(e.names)}", file=sys.stderr)
        return 2
    except (OSError, json.JSONDecodeError) as e:
        print(f"Failed to read input: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
