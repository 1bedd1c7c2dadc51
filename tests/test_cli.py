import json
import sys

import pytest

from src.cli.__main__ import main

from conftest import SCENARIO_ANALYSIS

ITEMS = [
    {"cost_type": "labor", "total_price": 100_000},
    {"cost_type": "composite", "total_price": 200_000, "labor_ratio": 0.5},
]


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["src.cli", *args])
    main()


def _write(tmp_path, name, data):
    path = tmp_path / name
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return str(path)


def test_estimate_prints_lines(monkeypatch, capsys, tmp_path):
    _run(monkeypatch, "estimate", _write(tmp_path, "analysis.json", SCENARIO_ANALYSIS))

    out = json.loads(capsys.readouterr().out)
    assert out["quantity_source"] == "estimator"
    assert out["low_confidence"] is False
    assert out["geometry"]["floor_area"] == 42
    lines = {l["item_name"]: l for l in out["lines"]}
    assert lines["강마루"]["quantity"] == 33
    assert lines["폐기물 처리"]["unit"] == "톤"


def test_aggregate_with_flags(monkeypatch, capsys, tmp_path):
    path = _write(tmp_path, "items.json", {"items": ITEMS})
    _run(monkeypatch, "aggregate", path, "--discount=10000", "--other=5000", "--no-vat")

    assert json.loads(capsys.readouterr().out) == {
        "labor_cost": 200_000, "material_cost": 100_000, "other_cost": 5_000,
        "discount_amount": 10_000, "total_amount": 305_000, "vat_amount": 0,
        "final_amount": 295_000,
    }


def test_aggregate_accepts_a_bare_list(monkeypatch, capsys, tmp_path):
    _run(monkeypatch, "aggregate", _write(tmp_path, "items.json", ITEMS))
    out = json.loads(capsys.readouterr().out)
    assert out["vat_amount"] == 30_000
    assert out["final_amount"] == 330_000


@pytest.mark.parametrize("argv", [[], ["unknown"], ["estimate"], ["aggregate"]])
def test_usage_errors_exit_1(monkeypatch, capsys, argv):
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, *argv)
    assert exc.value.code == 1
    assert "Usage:" in capsys.readouterr().err


def test_bad_number_flag_exits_1(monkeypatch, tmp_path):
    path = _write(tmp_path, "items.json", ITEMS)
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "aggregate", path, "--discount=lots")
    assert exc.value.code == 1


def test_engine_errors_exit_2(monkeypatch, capsys, tmp_path):
    bad = _write(tmp_path, "analysis.json", {"rooms": [{"name": "x", "type": "attic", "area": 1}]})
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "estimate", bad)
    assert exc.value.code == 2
    assert "Malformed floor plan analysis" in capsys.readouterr().err

    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "aggregate", _write(tmp_path, "items.json", ITEMS), "--discount=-1")
    assert exc.value.code == 2


def test_unreadable_json_exits_2(monkeypatch, tmp_path):
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "estimate", str(tmp_path / "missing.json"))
    assert exc.value.code == 2
