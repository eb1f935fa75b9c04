from __future__ import annotations

import json
from pathlib import Path

from slotpack.cli import main


def _schema(tmp_path: Path, fields, **extra) -> str:
    p = tmp_path / "schema.json"
    p.write_text(json.dumps({"fields": fields, **extra}))
    return str(p)


def _unpacked(tmp_path: Path) -> str:
    return _schema(tmp_path, [
        {"name": "owner", "type": "address"},
        {"name": "balance", "type": "uint256"},
        {"name": "isActive", "type": "bool"},
    ])


def test_pack_prints_table(tmp_path: Path, capsys):
    assert main(["pack", _unpacked(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "3 slot(s)" in out
    assert "balance" in out


def test_validate_json_and_strict(tmp_path: Path, capsys):
    path = _unpacked(tmp_path)
    assert main(["validate", path, "--json"]) == 0
    doc = json.loads(capsys.readouterr().out)
    assert doc["slot_count"] == 3
    assert doc["slot_waste"] == [12, 0, 31]

    locked = _schema(tmp_path, [{"name": "a", "width": 1}, {"name": "b", "width": 1, "locked": 0}])
    assert main(["validate", locked, "--strict"]) == 1
    assert "problem" in capsys.readouterr().out


def test_validate_with_ordering(tmp_path: Path, capsys):
    path = _unpacked(tmp_path)
    order = tmp_path / "layout.json"
    order.write_text(json.dumps({"ordering": ["owner", "isActive", "balance"]}))
    assert main(["validate", path, "--ordering", str(order), "--json"]) == 0
    assert json.loads(capsys.readouterr().out)["slot_count"] == 2


def test_optimize_writes_layout(tmp_path: Path, capsys):
    path = _unpacked(tmp_path)
    out = tmp_path / "out.json"
    assert main(["optimize", path, "--output", str(out)]) == 0
    text = capsys.readouterr().out
    assert "2 slot(s) (input order 3" in text
    doc = json.loads(out.read_text())
    assert doc["slot_count"] == 2
    assert doc["summary"]["estimated_cost_delta"] < 0


def test_optimize_json_reports_fallback(tmp_path: Path, capsys):
    path = _unpacked(tmp_path)
    assert main(["optimize", path, "--threshold", "0", "--json"]) == 0
    doc = json.loads(capsys.readouterr().out)
    assert doc["summary"]["slot_count"] == 2
    assert doc["summary"]["fallback"]["error"] == "SearchBudgetExceeded"
    assert doc["summary"]["fallback"]["reason"] == "threshold"


def test_optimize_strict_fails_on_fallback(tmp_path: Path, capsys):
    path = _unpacked(tmp_path)
    assert main(["optimize", path, "--threshold", "0", "--strict"]) == 2
    assert "SearchBudgetExceeded" in capsys.readouterr().err


def test_errors_map_to_exit_code(tmp_path: Path, capsys):
    dup = _schema(tmp_path, [{"name": "a", "width": 1}, {"name": "a", "width": 2}])
    assert main(["pack", dup]) == 2
    err = capsys.readouterr().err
    assert "DuplicateName" in err and "fields: a" in err

    clash = _schema(tmp_path, [
        {"name": "a", "width": 1, "locked": 0},
        {"name": "b", "width": 1, "locked": 0},
    ])
    assert main(["optimize", clash]) == 2
    assert "UnsatisfiableConstraints" in capsys.readouterr().err

    assert main(["pack", str(tmp_path / "missing.json")]) == 1


def test_score_and_lower_bound(tmp_path: Path, capsys):
    path = _unpacked(tmp_path)
    assert main(["lower-bound", path]) == 0
    assert capsys.readouterr().out.strip() == "2"
    assert main(["score", path, "--cold", "0"]) == 0
    assert capsys.readouterr().out.strip() == str(3 * 3000)


def test_types_listing(capsys):
    assert main(["types", "--json"]) == 0
    assert json.loads(capsys.readouterr().out)["address"] == 20


def test_malformed_documents_are_named_errors(tmp_path: Path, capsys):
    fields = [{"name": "a", "width": 1}, {"name": "b", "width": 2}]
    short = _schema(tmp_path, fields, profile={"frequencies": {"a": [1]}})
    assert main(["optimize", short]) == 2
    err = capsys.readouterr().err
    assert "InvalidField" in err and "fields: a" in err

    no_members = _schema(tmp_path, fields, profile={"transactions": [{"weight": 2}]})
    assert main(["score", no_members]) == 2
    assert "InvalidField" in capsys.readouterr().err

    bad_width = _schema(tmp_path, [{"name": "d", "dynamic": True, "width": "abc"}])
    assert main(["pack", bad_width]) == 2
    assert "fields: d" in capsys.readouterr().err

    order = tmp_path / "layout.json"
    order.write_text(json.dumps({"slots": []}))
    assert main(["validate", _schema(tmp_path, fields), "--ordering", str(order)]) == 2
