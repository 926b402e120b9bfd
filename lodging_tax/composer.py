"""
Result composition and the closing invariant check.

Totals are recomputed from the line items and then verified. A mismatch
means the engine itself is broken: it raises InternalConsistencyError and
never patches the published total.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from lodging_tax.calculator import money_sum, round_money
from lodging_tax.errors import InternalConsistencyError
from lodging_tax.models import (
    CalculationContext,
    CalculationResult,
    CategoryTotal,
    TaxCategory,
    TaxLineItem,
)


def compose(
    ctx: CalculationContext,
    line_items: Iterable[TaxLineItem],
    categories: Mapping[TaxCategory, CategoryTotal],
    rejected: Iterable[str] = (),
    exponent: int = 2,
) -> CalculationResult:
    """Assemble and verify a CalculationResult."""
    items = tuple(line_items)
    total_tax = money_sum((i.tax_amount for i in items), round_money(Decimal("0"), exponent))
    result = CalculationResult(
        base_amount=ctx.base_amount,
        tax_breakdown=items,
        category_breakdown=dict(categories),
        total_tax_amount=total_tax,
        total_amount=money_sum((ctx.base_amount, total_tax)),
        rejected_rules=tuple(rejected),
    )
    verify(result)
    return result


def verify(result: CalculationResult) -> None:
    """Raise InternalConsistencyError unless every total reconciles exactly."""
    rule_ids = tuple(i.rule_id for i in result.tax_breakdown)

    def _fail(message: str) -> InternalConsistencyError:
        return InternalConsistencyError(message, rule_ids)

    line_sum = money_sum(i.tax_amount for i in result.tax_breakdown)
    if result.total_tax_amount != line_sum:
        raise _fail(
            f"total tax {result.total_tax_amount} != sum of line items {line_sum}"
        )

    if result.total_amount != money_sum((result.base_amount, result.total_tax_amount)):
        raise _fail(
            f"total amount {result.total_amount} != base "
            f"{result.base_amount} + tax {result.total_tax_amount}"
        )

    seen = 0
    for category, group in result.category_breakdown.items():
        if group.category is not category:
            raise _fail(
                f"category key {category.value} holds {group.category.value} group"
            )
        group_sum = money_sum(i.tax_amount for i in group.items)
        if group.total_amount != group_sum:
            raise _fail(
                f"category {category.value} total {group.total_amount} "
                f"!= sum of its items {group_sum}"
            )
        if any(i.category is not category for i in group.items):
            raise _fail(f"category {category.value} contains a foreign line item")
        seen += len(group.items)

    category_sum = money_sum(g.total_amount for g in result.category_breakdown.values())
    if seen != len(result.tax_breakdown) or category_sum != result.total_tax_amount:
        raise _fail(
            f"category breakdown ({seen} items, {category_sum}) does not "
            f"partition the tax breakdown ({len(result.tax_breakdown)} items, "
            f"{result.total_tax_amount})"
        )
