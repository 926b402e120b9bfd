"""
Error taxonomy for the tax calculation engine.

- InvalidRuleDefinition    - malformed rule from the rule store
- InvalidContext           - bad request input, user-correctable
- InternalConsistencyError - closing-invariant failure (engine defect)
- CalculationUnavailable   - masked, user-facing stand-in for the above two
"""

from __future__ import annotations

from typing import Optional


class TaxEngineError(Exception):
    """Base class for all engine errors."""


class InvalidRuleDefinition(TaxEngineError):
    """A rule record violates the rule model invariants."""

    def __init__(self, reason: str, rule_id: Optional[str] = None) -> None:
        self.rule_id = rule_id
        self.reason = reason
        label = rule_id if rule_id else "<unknown>"
        super().__init__(f"Invalid rule {label}: {reason}")


class InvalidContext(TaxEngineError):
    """
    Calculation request failed validation.

    `errors` maps request field names to a human-readable message.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        detail = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        super().__init__(f"Invalid calculation context: {detail}")


class InternalConsistencyError(TaxEngineError):
    """Computed totals do not reconcile with the line items."""

    def __init__(self, message: str, rule_ids: tuple[str, ...] = ()) -> None:
        self.rule_ids = tuple(rule_ids)
        super().__init__(message)


class CalculationUnavailable(TaxEngineError):
    """Generic failure shown to end users when the engine cannot produce a result."""

    def __init__(self, message: str = "Tax calculation unavailable") -> None:
        super().__init__(message)
