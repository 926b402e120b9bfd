#!/usr/bin/env python3
"""
Lodging Tax Engine - Entry Point

Calculates taxes and fees for property bookings from a rule set,
with compounding taxes and an exact per-rule and per-category breakdown.

Usage:
    python main.py calculate -r examples/data/rules.json -p hotel-001 --amount 4500 --nights 2
    python main.py batch -r examples/data/rules.json -p hotel-001 -f examples/data/requests.csv
    python main.py rules -r examples/data/rules.json -p hotel-001 --amount 4500 --country IN
"""

from lodging_tax.cli import main

if __name__ == "__main__":
    main()
