"""Tests for the command-line interface."""

import json
from decimal import Decimal

import pytest

from lodging_tax.cli import _money, build_parser, main

RULES = {
    "properties": {
        "hotel-001": [
            {"_id": "gst", "taxName": "GST", "taxType": "GST", "taxRate": 18},
            {
                "_id": "city", "taxName": "City tax", "taxType": "city_tax",
                "isPercentage": False, "fixedAmount": 50,
                "calculationMethod": "per_room_per_night",
                "applicableRoomTypes": ["suite"],
            },
            {"_id": "broken", "taxName": "Draft", "taxType": "tourism", "isPercentage": False, "fixedAmount": 5},
        ]
    }
}


@pytest.fixture
def rules_file(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps(RULES), encoding="utf-8")
    return str(path)


def _exit_code(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_parser_defaults():
    args = build_parser().parse_args(
        ["calculate", "-r", "rules.json", "-p", "hotel-001", "--amount", "100"]
    )
    assert args.rooms == "1"
    assert args.channel == "direct"
    assert args.check_in is None


def test_no_command_prints_help(capsys):
    assert _exit_code([]) == 0
    assert "lodging-tax" in capsys.readouterr().out


def test_calculate_with_exports(rules_file, tmp_path):
    json_path = tmp_path / "calc.json"
    csv_path = tmp_path / "calc.csv"
    code = _exit_code(
        [
            "calculate", "-r", rules_file, "-p", "hotel-001",
            "--amount", "100", "--room-type", "suite", "--rooms", "2",
            "--nights", "3", "--check-in", "2025-03-14",
            "--export-json", str(json_path), "--export-csv", str(csv_path),
        ]
    )
    assert code == 0
    document = json.loads(json_path.read_text(encoding="utf-8"))
    assert document["result"]["totalTaxAmount"] == "318.00"
    assert document["result"]["totalAmount"] == "418.00"
    assert "city" in csv_path.read_text(encoding="utf-8")


def test_calculate_invalid_context_exit_code(rules_file):
    code = _exit_code(
        ["calculate", "-r", rules_file, "-p", "hotel-001", "--amount", "-1"]
    )
    assert code == 2


def test_missing_rules_file(tmp_path):
    code = _exit_code(
        ["calculate", "-r", str(tmp_path / "nope.json"), "-p", "x", "--amount", "1"]
    )
    assert code == 1


def test_batch(rules_file, tmp_path):
    csv_path = tmp_path / "requests.csv"
    csv_path.write_text(
        "baseAmount,stayNights,checkInDate\n100,1,2025-03-14\n250.50,2,2025-03-15\n",
        encoding="utf-8",
    )
    code = _exit_code(["batch", "-r", rules_file, "-p", "hotel-001", "-f", str(csv_path)])
    assert code == 0


def test_batch_with_bad_row_fails(rules_file, tmp_path):
    csv_path = tmp_path / "requests.csv"
    csv_path.write_text("baseAmount,checkInDate\n0,2025-03-14\n", encoding="utf-8")
    code = _exit_code(["batch", "-r", rules_file, "-p", "hotel-001", "-f", str(csv_path)])
    assert code == 1


def test_rules_listing(rules_file, capsys):
    code = _exit_code(
        ["rules", "-r", rules_file, "-p", "hotel-001", "--amount", "100", "--room-type", "deluxe"]
    )
    assert code == 0
    out = capsys.readouterr().out
    assert "applies" in out
    assert "room_type" in out
    assert "invalid" in out


def test_money_uses_minor_unit_places():
    assert _money(Decimal("1234.5"), 0) == "1,234"
    assert _money(Decimal("18"), 3) == "18.000"
    assert _money(Decimal("100.125"), 2) == "100.125"
    assert _money(None) == "-"


def test_calculate_shows_configured_minor_units(
    rules_file, capsys, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("LODGING_TAX_MINOR_UNITS", "3")
    code = _exit_code(["calculate", "-r", rules_file, "-p", "hotel-001", "--amount", "100"])
    assert code == 0
    out = capsys.readouterr().out
    assert "18.000" in out
    assert "118.000" in out
