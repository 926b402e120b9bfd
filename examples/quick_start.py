#!/usr/bin/env python3
"""
Quick Start Example
===================

Demonstrates basic usage of the TaxEngine: one GST rule, two compound
charges, and a per-room-per-night city tax evaluated for a two-night
stay, then printed as the calculate endpoint's JSON response.

Usage:
    python examples/quick_start.py
"""

from datetime import date
from decimal import Decimal

from lodging_tax import CalculationContext, RuleStore, TaxEngine
from lodging_tax.serialize import dumps, to_response


def main() -> None:
    # Publish a small rule set for one property
    store = RuleStore()
    store.publish(
        "hotel-001",
        [
            {"_id": "gst", "taxName": "GST", "taxType": "GST", "taxRate": "18"},
            {
                "_id": "svc", "taxName": "Service charge", "taxType": "service",
                "taxRate": "10", "isCompoundTax": True, "compoundOrder": 1,
            },
            {
                "_id": "lux", "taxName": "Luxury levy", "taxType": "luxury",
                "taxRate": "5", "isCompoundTax": True, "compoundOrder": 2,
            },
            {
                "_id": "city", "taxName": "City tax", "taxType": "city",
                "isPercentage": False, "fixedAmount": "50",
                "calculationMethod": "per_room_per_night",
            },
        ],
    )

    ctx = CalculationContext(
        base_amount=Decimal("100.00"),
        check_in_date=date.today(),
        room_count=2,
        guest_count=2,
        stay_nights=3,
    )

    engine = TaxEngine()
    result = engine.calculate_for_property(store, "hotel-001", ctx)

    for item in result.tax_breakdown:
        print(f"{item.rule_name:<16} base {item.base_amount_used:>8}  tax {item.tax_amount:>8}")
    print(f"{'Total tax':<16} {result.total_tax_amount:>27}")
    print(f"{'Total':<16} {result.total_amount:>27}")

    print("\n--- Response payload ---")
    print(dumps(to_response(result)))


if __name__ == "__main__":
    main()
