"""Audit and optimize the account record in account.json."""
from __future__ import annotations

from pathlib import Path

from slotpack.core.optimize import optimize
from slotpack.core.validate import validate
from slotpack.schema_io import layout_to_frame, load_profile, load_schema

HERE = Path(__file__).parent


if __name__ == "__main__":
    schema = load_schema(HERE / "account.json")
    profile = load_profile(HERE / "account.json")

    report = validate(schema)
    print(f"as written: {report.slot_count} slots, {report.wasted_bytes} bytes wasted")
    print(layout_to_frame(report.layout).to_string(index=False))

    res = optimize(schema, access_profile=profile)
    print(f"\noptimized: {res.slot_count} slots (cost delta {res.cost_delta:+.0f})")
    print(layout_to_frame(res.layout).to_string(index=False))
