"""Tests for simple/compound evaluation ordering."""

from datetime import date
from decimal import Decimal
from typing import Optional

from lodging_tax.models import (
    CalculationContext,
    CalculationMethod,
    FixedCharge,
    PercentageCharge,
    TaxCategory,
    TaxRule,
)
from lodging_tax.sequencer import plan, run


def _ctx(base: str = "100") -> CalculationContext:
    return CalculationContext(
        base_amount=Decimal(base),
        check_in_date=date(2025, 3, 14),
        room_count=2,
        stay_nights=3,
    )


def _pct(rule_id: str, rate: str, order: Optional[int] = None) -> TaxRule:
    return TaxRule(
        rule_id=rule_id,
        name=rule_id,
        category=TaxCategory.SERVICE,
        charge=PercentageCharge(Decimal(rate)),
        is_compound=order is not None,
        compound_order=order,
    )


def _amounts(items) -> dict:
    return {i.rule_id: i.tax_amount for i in items}


def test_plan_partitions_and_sorts():
    rules = [_pct("s1", "5"), _pct("c2", "5", 2), _pct("s2", "5"), _pct("c1", "5", 1)]
    evaluation = plan(rules)
    assert [r.rule_id for r in evaluation.simple] == ["s1", "s2"]
    assert [r.rule_id for r in evaluation.compound] == ["c1", "c2"]
    assert [r.rule_id for r in evaluation.ordered] == ["s1", "s2", "c1", "c2"]


def test_compound_ties_broken_by_rule_id():
    rules = [_pct("zeta", "1", 1), _pct("alpha", "1", 1), _pct("mid", "1", 0)]
    evaluation = plan(rules)
    assert [r.rule_id for r in evaluation.compound] == ["mid", "alpha", "zeta"]


def test_two_compound_rules_chain():
    items = run(plan([_pct("c1", "10", 1), _pct("c2", "5", 2)]), _ctx("100"))
    assert items[0].base_amount_used == Decimal("100")
    assert items[0].tax_amount == Decimal("10.00")
    assert items[1].base_amount_used == Decimal("110.00")
    assert items[1].tax_amount == Decimal("5.50")


def test_declared_order_wins_over_store_order():
    items = run(plan([_pct("c2", "5", 2), _pct("c1", "10", 1)]), _ctx("100"))
    assert [i.rule_id for i in items] == ["c1", "c2"]
    assert _amounts(items) == {"c1": Decimal("10.00"), "c2": Decimal("5.50")}


def test_simple_rules_use_original_base():
    items = run(
        plan([_pct("s1", "18"), _pct("c1", "10", 1), _pct("s2", "2")]),
        _ctx("100"),
    )
    by_id = {i.rule_id: i for i in items}
    assert by_id["s1"].base_amount_used == Decimal("100")
    assert by_id["s2"].base_amount_used == Decimal("100")
    assert by_id["c1"].base_amount_used == Decimal("100")


def test_simple_rules_never_move_compound_amounts():
    compound = [_pct("c1", "10", 1), _pct("c2", "5", 2)]
    fixed = TaxRule(
        rule_id="city",
        name="City",
        category=TaxCategory.CITY,
        charge=FixedCharge(Decimal("50"), CalculationMethod.PER_ROOM_PER_NIGHT),
    )
    with_simple = _amounts(run(plan([_pct("s1", "18"), fixed] + compound), _ctx()))
    without_simple = _amounts(run(plan(compound), _ctx()))
    for rule_id in ("c1", "c2"):
        assert with_simple[rule_id] == without_simple[rule_id]


def test_fixed_compound_rule_feeds_running_base():
    fixed = TaxRule(
        rule_id="fee",
        name="Fee",
        category=TaxCategory.RESORT_FEE,
        charge=FixedCharge(Decimal("20"), CalculationMethod.PER_BOOKING),
        is_compound=True,
        compound_order=1,
    )
    items = run(plan([fixed, _pct("vat", "10", 2)]), _ctx("100"))
    assert _amounts(items) == {"fee": Decimal("20.00"), "vat": Decimal("12.00")}


def test_custom_calculate_function_is_used():
    calls = []

    def fake(rule, base, ctx):
        calls.append((rule.rule_id, base))
        return Decimal("1.00")

    run(plan([_pct("c1", "10", 1), _pct("c2", "10", 2)]), _ctx("100"), calculate=fake)
    assert calls == [("c1", Decimal("100")), ("c2", Decimal("101.00"))]


def test_empty_plan():
    assert run(plan([]), _ctx()) == ()
