"""
Amount calculation for a single rule.

Handles:
- Percentage charges on an effective base
- Fixed charges scaled per booking, room, guest, and night
- Rounding to the currency minor unit (round-half-even)
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_EVEN, Decimal, Inexact, localcontext

from lodging_tax.errors import InvalidRuleDefinition
from lodging_tax.models import (
    CalculationContext,
    CalculationMethod,
    FixedCharge,
    PercentageCharge,
    TaxRule,
)

_HUNDRED = Decimal("100")

# Enough digits that no intermediate product is ever rounded
_WORKING_PRECISION = 50


def minor_unit(exponent: int = 2) -> Decimal:
    """Smallest currency denomination, e.g. Decimal('0.01') for exponent 2."""
    if exponent < 0:
        raise ValueError(f"minor unit exponent must be >= 0, got {exponent}")
    return Decimal(1).scaleb(-exponent)


def round_money(amount: Decimal, exponent: int = 2) -> Decimal:
    """
    Round to the currency minor unit with banker's rounding.

    Half-even is fixed for every line item so rounding errors do not
    drift in one direction across a breakdown.
    """
    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        return amount.quantize(minor_unit(exponent), rounding=ROUND_HALF_EVEN)


def money_sum(amounts: Iterable[Decimal], start: Decimal = Decimal("0")) -> Decimal:
    """
    Add money amounts at working precision.

    Inexact is trapped, so a sum that would need rounding raises instead
    of silently losing digits.
    """
    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        ctx.traps[Inexact] = True
        return sum(amounts, start)


def method_multiplier(method: CalculationMethod, ctx: CalculationContext) -> int:
    """Number of units a fixed amount is charged for."""
    if method is CalculationMethod.PER_BOOKING:
        return 1
    if method is CalculationMethod.PER_ROOM:
        return ctx.room_count
    if method is CalculationMethod.PER_ROOM_PER_NIGHT:
        return ctx.room_count * ctx.stay_nights
    if method is CalculationMethod.PER_GUEST:
        return ctx.guest_count
    if method is CalculationMethod.PER_GUEST_PER_NIGHT:
        return ctx.guest_count * ctx.stay_nights
    raise InvalidRuleDefinition(f"unsupported calculation method {method!r}")


def calculate_amount(
    rule: TaxRule,
    effective_base: Decimal,
    ctx: CalculationContext,
    exponent: int = 2,
) -> Decimal:
    """
    Compute a rule's amount, rounded to the minor unit.

    Percentage rules use `effective_base`; fixed rules ignore it.
    """
    charge = rule.charge
    with localcontext() as dctx:
        dctx.prec = _WORKING_PRECISION
        if isinstance(charge, PercentageCharge):
            raw = effective_base * charge.rate / _HUNDRED
        elif isinstance(charge, FixedCharge):
            try:
                raw = charge.amount * method_multiplier(charge.method, ctx)
            except InvalidRuleDefinition as e:
                raise InvalidRuleDefinition(e.reason, rule.rule_id) from e
        else:
            raise InvalidRuleDefinition(
                f"unsupported charge type {type(charge).__name__}", rule.rule_id
            )
    return round_money(raw, exponent)
