"""
Applicability resolution: which rules apply to a calculation context.

Every predicate a rule sets must hold (strict conjunction). Rules that
cannot be parsed are rejected, recorded, and logged. A rejected rule is
different from a rule that simply does not apply.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from lodging_tax.errors import InvalidRuleDefinition
from lodging_tax.models import CalculationContext, TaxRule
from lodging_tax.rules import parse_rule, rule_id_of
from lodging_tax.store import RuleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RejectedRule:
    """A rule excluded because its definition is invalid."""

    rule_id: str
    reason: str


@dataclass(frozen=True)
class Resolution:
    """Applicable rules in rule-store order, plus any rejected definitions."""

    applicable: tuple[TaxRule, ...]
    rejected: tuple[RejectedRule, ...] = field(default_factory=tuple)


def explain(rule: TaxRule, ctx: CalculationContext) -> list[str]:
    """
    Return the names of the predicates the context fails.

    An empty list means the rule applies.
    """
    failures: list[str] = []
    app = rule.applicability
    exempt = rule.exemptions

    if not rule.is_active:
        failures.append("inactive")

    if app.room_types and ctx.room_type_id not in app.room_types:
        failures.append("room_type")

    if not app.all_channels and ctx.channel not in app.channels:
        failures.append("channel")

    # An unknown guest type only satisfies an unrestricted rule
    if app.guest_types and ctx.guest_type not in app.guest_types:
        failures.append("guest_type")

    country = ctx.guest_country.upper() if ctx.guest_country else None
    if app.guest_countries and country not in app.guest_countries:
        failures.append("guest_country")

    if app.effective_from is not None and ctx.check_in_date < app.effective_from:
        failures.append("effective_from")
    if app.effective_to is not None and ctx.check_in_date >= app.effective_to:
        failures.append("effective_to")

    if app.min_base_amount is not None and ctx.base_amount < app.min_base_amount:
        failures.append("min_base_amount")
    if app.max_base_amount is not None and ctx.base_amount > app.max_base_amount:
        failures.append("max_base_amount")

    if exempt.minimum_stay_nights and ctx.stay_nights < exempt.minimum_stay_nights:
        failures.append("minimum_stay_nights")
    if exempt.maximum_stay_nights and ctx.stay_nights > exempt.maximum_stay_nights:
        failures.append("maximum_stay_nights")
    if ctx.guest_type is not None and ctx.guest_type in exempt.exempt_guest_types:
        failures.append("exempt_guest_type")
    if country is not None and country in exempt.exempt_countries:
        failures.append("exempt_country")

    return failures


def is_applicable(rule: TaxRule, ctx: CalculationContext) -> bool:
    return not explain(rule, ctx)


def resolve(rules: Iterable[RuleRecord], ctx: CalculationContext) -> Resolution:
    """
    Filter a rule snapshot down to the rules that apply to `ctx`.

    Raw records are validated on the way through; invalid ones are
    excluded and reported in `Resolution.rejected`.
    """
    applicable: list[TaxRule] = []
    rejected: list[RejectedRule] = []

    for record in rules:
        if isinstance(record, TaxRule):
            rule = record
        else:
            try:
                rule = parse_rule(record)
            except InvalidRuleDefinition as e:
                rule_id = e.rule_id or rule_id_of(record) or "<unknown>"
                logger.warning(
                    "Rejected rule %s: %s (%s)",
                    rule_id, e.reason, type(e).__name__,
                )
                rejected.append(RejectedRule(rule_id=rule_id, reason=e.reason))
                continue

        failures = explain(rule, ctx)
        if failures:
            logger.debug(
                "Rule %s not applicable: %s", rule.rule_id, ", ".join(failures)
            )
            continue
        applicable.append(rule)

    return Resolution(applicable=tuple(applicable), rejected=tuple(rejected))
