"""
Tax engine facade.

Runs the full pipeline for a request:

    rule snapshot -> resolve -> plan -> calculate -> aggregate -> compose

`evaluate` is the pure core and lets every engine error through.
`handle_request` is the user-facing entry point: context errors surface
with field detail, while rule-definition and consistency failures are
logged with their rule ids and replaced by CalculationUnavailable, as are
decimal arithmetic failures.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Any, Optional, Union

from lodging_tax.aggregation import aggregate
from lodging_tax.applicability import resolve
from lodging_tax.calculator import calculate_amount, money_sum
from lodging_tax.composer import compose
from lodging_tax.config import EngineConfig
from lodging_tax.errors import (
    CalculationUnavailable,
    InternalConsistencyError,
    InvalidContext,
    InvalidRuleDefinition,
    TaxEngineError,
)
from lodging_tax.models import CalculationContext, CalculationResult
from lodging_tax.rules import parse_context
from lodging_tax.sequencer import plan, run
from lodging_tax.store import RuleRecord, RuleSnapshot, RuleStore

logger = logging.getLogger(__name__)

Request = Union[CalculationContext, Mapping[str, Any]]


@dataclass
class BatchItem:
    """Outcome of one request in a batch: a result or a user-facing error."""

    index: int
    result: Optional[CalculationResult] = None
    error: Optional[TaxEngineError] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass
class BatchResult:
    """Aggregated outcome of a batch evaluated against one snapshot."""

    items: list[BatchItem]
    snapshot_version: int
    total_base: Decimal = Decimal("0")
    total_tax: Decimal = Decimal("0")
    category_totals: dict[str, Decimal] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.ok)

    @property
    def failed(self) -> int:
        return len(self.items) - self.succeeded


def _records(rules: Union[RuleSnapshot, Iterable[RuleRecord]]) -> tuple[RuleRecord, ...]:
    if isinstance(rules, RuleSnapshot):
        return rules.rules
    return tuple(rules)


class TaxEngine:
    """
    Stateless tax calculator.

    Holds only configuration; every call works on the snapshot it is
    given, so one engine can serve many threads at once.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()
        self._calculate = partial(
            calculate_amount, exponent=self.config.minor_unit_exponent
        )

    def evaluate(
        self,
        rules: Union[RuleSnapshot, Iterable[RuleRecord]],
        ctx: CalculationContext,
    ) -> CalculationResult:
        """Compute the breakdown for one context. Raises engine errors unmasked."""
        resolution = resolve(_records(rules), ctx)
        evaluation = plan(resolution.applicable)
        items = run(evaluation, ctx, calculate=self._calculate)
        return compose(
            ctx,
            items,
            aggregate(items),
            rejected=(r.rule_id for r in resolution.rejected),
            exponent=self.config.minor_unit_exponent,
        )

    def handle_request(
        self,
        rules: Union[RuleSnapshot, Iterable[RuleRecord]],
        request: Request,
    ) -> CalculationResult:
        """
        Evaluate a request for an end user.

        Raises InvalidContext for bad input and CalculationUnavailable for
        anything the user cannot fix.
        """
        ctx = request if isinstance(request, CalculationContext) else parse_context(request)
        try:
            return self.evaluate(rules, ctx)
        except InvalidRuleDefinition as e:
            logger.error(
                "Calculation aborted by invalid rule %s: %s",
                e.rule_id or "<unknown>", e.reason,
            )
            raise CalculationUnavailable() from e
        except InternalConsistencyError as e:
            logger.error(
                "Internal consistency failure (rules: %s): %s",
                ", ".join(e.rule_ids) or "-", e,
            )
            raise CalculationUnavailable() from e
        except ArithmeticError as e:
            logger.error("Decimal arithmetic failure: %r", e)
            raise CalculationUnavailable() from e

    def calculate_for_property(
        self, store: RuleStore, property_id: str, request: Request
    ) -> CalculationResult:
        """Evaluate a request against a property's current rule snapshot."""
        return self.handle_request(store.current_rules(property_id), request)

    def calculate_batch(
        self,
        rules: Union[RuleSnapshot, Iterable[RuleRecord]],
        requests: Sequence[Request],
    ) -> BatchResult:
        """
        Evaluate many requests against one snapshot on a thread pool.

        Items keep input order. Failures are captured per item.
        """
        records = _records(rules)
        version = rules.version if isinstance(rules, RuleSnapshot) else 0

        def _one(indexed: tuple[int, Request]) -> BatchItem:
            index, request = indexed
            try:
                return BatchItem(index=index, result=self.handle_request(records, request))
            except (InvalidContext, CalculationUnavailable) as e:
                return BatchItem(index=index, error=e)

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            items = list(pool.map(_one, enumerate(requests)))

        batch = BatchResult(items=items, snapshot_version=version)
        for item in items:
            if item.result is None:
                continue
            batch.total_base = money_sum((batch.total_base, item.result.base_amount))
            batch.total_tax = money_sum((batch.total_tax, item.result.total_tax_amount))
            for category, group in item.result.category_breakdown.items():
                batch.category_totals[category.value] = money_sum(
                    (batch.category_totals.get(category.value, Decimal("0")), group.total_amount)
                )

        logger.info(
            "Batch of %d evaluated against snapshot v%d: %d ok, %d failed",
            len(items), version, batch.succeeded, batch.failed,
        )
        return batch
