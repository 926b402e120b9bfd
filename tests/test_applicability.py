"""Tests for rule applicability resolution."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from lodging_tax.applicability import explain, is_applicable, resolve
from lodging_tax.models import (
    Applicability,
    CalculationContext,
    ExemptionRules,
    PercentageCharge,
    TaxCategory,
    TaxRule,
)


def _ctx(**overrides) -> CalculationContext:
    fields = dict(
        base_amount=Decimal("1000"),
        check_in_date=date(2025, 3, 14),
        room_count=1,
        guest_count=2,
        stay_nights=2,
        channel="direct",
        room_type_id="deluxe",
        guest_type=None,
        guest_country="US",
    )
    fields.update(overrides)
    return CalculationContext(**fields)


def _rule(
    rule_id: str = "r-1",
    applicability: Applicability = Applicability(),
    exemptions: ExemptionRules = ExemptionRules(),
    is_active: bool = True,
) -> TaxRule:
    return TaxRule(
        rule_id=rule_id,
        name=rule_id,
        category=TaxCategory.GST,
        charge=PercentageCharge(Decimal("12")),
        applicability=applicability,
        exemptions=exemptions,
        is_active=is_active,
    )


# ── Allow-lists ──────────────────────────────────────────────────────


def test_unrestricted_rule_applies_to_every_room_type():
    rule = _rule()
    for room_type in ("deluxe", "suite", None):
        assert is_applicable(rule, _ctx(room_type_id=room_type))


def test_room_type_allow_list_excludes_other_room_types():
    rule = _rule(applicability=Applicability(room_types=frozenset({"suite"})))
    assert is_applicable(rule, _ctx(room_type_id="suite"))
    assert explain(rule, _ctx(room_type_id="deluxe")) == ["room_type"]
    assert not is_applicable(rule, _ctx(room_type_id=None))


def test_channel_allow_list():
    rule = _rule(applicability=Applicability(channels=frozenset({"expedia"})))
    assert is_applicable(rule, _ctx(channel="expedia"))
    assert explain(rule, _ctx(channel="direct")) == ["channel"]


def test_all_channel_sentinel_matches_everything():
    rule = _rule(applicability=Applicability(channels=frozenset({"all"})))
    assert is_applicable(rule, _ctx(channel="agoda"))


def test_absent_guest_type_only_matches_unrestricted_rule():
    restricted = _rule(applicability=Applicability(guest_types=frozenset({"corporate"})))
    assert not is_applicable(restricted, _ctx(guest_type=None))
    assert is_applicable(restricted, _ctx(guest_type="corporate"))
    assert is_applicable(_rule(), _ctx(guest_type=None))


def test_guest_country_allow_list_is_case_insensitive():
    rule = _rule(applicability=Applicability(guest_countries=frozenset({"IN"})))
    assert is_applicable(rule, _ctx(guest_country="in"))
    assert explain(rule, _ctx(guest_country="US")) == ["guest_country"]
    assert not is_applicable(rule, _ctx(guest_country=None))


# ── Date window and thresholds ───────────────────────────────────────


def test_window_is_half_open():
    rule = _rule(
        applicability=Applicability(
            effective_from=date(2025, 1, 1), effective_to=date(2025, 4, 1)
        )
    )
    assert is_applicable(rule, _ctx(check_in_date=date(2025, 1, 1)))
    assert is_applicable(rule, _ctx(check_in_date=date(2025, 3, 31)))
    assert explain(rule, _ctx(check_in_date=date(2025, 4, 1))) == ["effective_to"]
    assert explain(rule, _ctx(check_in_date=date(2024, 12, 31))) == ["effective_from"]


def test_open_ended_window():
    rule = _rule(applicability=Applicability(effective_from=date(2020, 1, 1)))
    assert is_applicable(rule, _ctx(check_in_date=date(2099, 1, 1)))


def test_amount_thresholds_are_inclusive():
    rule = _rule(
        applicability=Applicability(
            min_base_amount=Decimal("1001"), max_base_amount=Decimal("7500")
        )
    )
    assert is_applicable(rule, _ctx(base_amount=Decimal("1001")))
    assert is_applicable(rule, _ctx(base_amount=Decimal("7500")))
    assert explain(rule, _ctx(base_amount=Decimal("1000.99"))) == ["min_base_amount"]
    assert explain(rule, _ctx(base_amount=Decimal("7500.01"))) == ["max_base_amount"]


def test_predicates_are_a_strict_conjunction():
    rule = _rule(
        applicability=Applicability(
            room_types=frozenset({"deluxe"}),
            channels=frozenset({"booking_com"}),
        )
    )
    # Room type matches but channel does not
    assert explain(rule, _ctx()) == ["channel"]


# ── Exemptions ───────────────────────────────────────────────────────


def test_stay_length_bounds():
    rule = _rule(exemptions=ExemptionRules(minimum_stay_nights=2, maximum_stay_nights=30))
    assert explain(rule, _ctx(stay_nights=1)) == ["minimum_stay_nights"]
    assert is_applicable(rule, _ctx(stay_nights=2))
    assert is_applicable(rule, _ctx(stay_nights=30))
    assert explain(rule, _ctx(stay_nights=31)) == ["maximum_stay_nights"]


def test_exempt_guest_type_and_country():
    rule = _rule(
        exemptions=ExemptionRules(
            exempt_guest_types=frozenset({"government"}),
            exempt_countries=frozenset({"IN"}),
        )
    )
    assert explain(rule, _ctx(guest_type="government")) == ["exempt_guest_type"]
    assert explain(rule, _ctx(guest_country="in")) == ["exempt_country"]
    assert is_applicable(rule, _ctx(guest_type="corporate", guest_country="US"))


def test_inactive_rule_never_applies():
    assert explain(_rule(is_active=False), _ctx()) == ["inactive"]


# ── resolve() ────────────────────────────────────────────────────────


def test_resolve_preserves_store_order():
    rules = [_rule("c"), _rule("a"), _rule("b")]
    resolution = resolve(rules, _ctx())
    assert [r.rule_id for r in resolution.applicable] == ["c", "a", "b"]
    assert resolution.rejected == ()


def test_resolve_accepts_raw_records():
    records = [
        {"_id": "gst", "taxName": "GST", "taxType": "GST", "taxRate": 12},
        {
            "_id": "suite-only", "taxName": "Suite", "taxType": "luxury",
            "taxRate": 5, "applicableRoomTypes": ["suite"],
        },
    ]
    resolution = resolve(records, _ctx(room_type_id="deluxe"))
    assert [r.rule_id for r in resolution.applicable] == ["gst"]


def test_invalid_record_is_rejected_and_logged(caplog: pytest.LogCaptureFixture):
    records = [
        {"_id": "ok", "taxName": "GST", "taxType": "GST", "taxRate": 12},
        {"_id": "bad", "taxName": "Levy", "taxType": "luxury", "taxRate": 5, "isCompoundTax": True},
    ]
    with caplog.at_level(logging.WARNING, logger="lodging_tax.applicability"):
        resolution = resolve(records, _ctx())

    assert [r.rule_id for r in resolution.applicable] == ["ok"]
    assert len(resolution.rejected) == 1
    assert resolution.rejected[0].rule_id == "bad"
    assert "compound order" in resolution.rejected[0].reason
    assert "bad" in caplog.text
    assert "InvalidRuleDefinition" in caplog.text


def test_not_applicable_is_not_rejected():
    records = [
        {
            "_id": "in-only", "taxName": "GST", "taxType": "GST", "taxRate": 12,
            "applicableCountries": ["IN"],
        }
    ]
    resolution = resolve(records, _ctx(guest_country="US"))
    assert resolution.applicable == ()
    assert resolution.rejected == ()
