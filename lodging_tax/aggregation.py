"""Group line items into per-category totals."""

from __future__ import annotations

from collections.abc import Iterable

from lodging_tax.calculator import money_sum
from lodging_tax.models import CategoryTotal, TaxCategory, TaxLineItem


def aggregate(line_items: Iterable[TaxLineItem]) -> dict[TaxCategory, CategoryTotal]:
    """
    Partition line items by category.

    Categories appear in order of first occurrence; items keep their
    evaluation order within a category.
    """
    groups: dict[TaxCategory, list[TaxLineItem]] = {}
    for item in line_items:
        groups.setdefault(item.category, []).append(item)

    return {
        category: CategoryTotal(
            category=category,
            items=tuple(items),
            total_amount=money_sum(i.tax_amount for i in items),
        )
        for category, items in groups.items()
    }
