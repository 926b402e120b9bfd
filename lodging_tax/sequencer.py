"""
Compounding sequencer.

Simple rules are charged on the original base. Compound rules are charged
in ascending compound order, each on the base plus every compound amount
already charged. Simple amounts never enter that running base, so adding
or removing a simple rule cannot move a compound amount.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal

from lodging_tax.calculator import calculate_amount, money_sum
from lodging_tax.models import CalculationContext, TaxLineItem, TaxRule

AmountFn = Callable[[TaxRule, Decimal, CalculationContext], Decimal]


@dataclass(frozen=True)
class EvaluationPlan:
    simple: tuple[TaxRule, ...]
    compound: tuple[TaxRule, ...]

    @property
    def ordered(self) -> tuple[TaxRule, ...]:
        """Rules in the order their line items are reported."""
        return self.simple + self.compound


def _compound_key(rule: TaxRule) -> tuple[int, str]:
    # compound_order is always set on compound rules (TaxRule invariant)
    return (rule.compound_order or 0, rule.rule_id)


def plan(rules: Iterable[TaxRule]) -> EvaluationPlan:
    """Split resolved rules; simple keep store order, compound sort by (order, id)."""
    simple: list[TaxRule] = []
    compound: list[TaxRule] = []
    for rule in rules:
        (compound if rule.is_compound else simple).append(rule)
    return EvaluationPlan(
        simple=tuple(simple),
        compound=tuple(sorted(compound, key=_compound_key)),
    )


def run(
    evaluation: EvaluationPlan,
    ctx: CalculationContext,
    calculate: AmountFn = calculate_amount,
) -> tuple[TaxLineItem, ...]:
    """Evaluate a plan into line items, simple rules first."""
    items: list[TaxLineItem] = []

    for rule in evaluation.simple:
        amount = calculate(rule, ctx.base_amount, ctx)
        items.append(TaxLineItem.for_rule(rule, ctx.base_amount, amount))

    running_base = ctx.base_amount
    for rule in evaluation.compound:
        amount = calculate(rule, running_base, ctx)
        items.append(TaxLineItem.for_rule(rule, running_base, amount))
        running_base = money_sum((running_base, amount))

    return tuple(items)
