"""
Lodging Tax Engine
==================

Rule-based tax and fee calculation for property bookings: applicability
resolution, compounding taxes, exact decimal money, and an auditable
per-rule and per-category breakdown.

Modules:
    models        - Rule, context, and result types
    rules         - Validation of rule records and request payloads
    store         - Immutable per-property rule snapshots
    applicability - Rule applicability resolution
    calculator    - Single-rule amount calculation and rounding
    sequencer     - Simple/compound evaluation order
    aggregation   - Per-category totals
    composer      - Result assembly and closing invariant check
    engine        - Request pipeline, error masking, batch evaluation
    serialize     - Wire payloads, JSON/CSV export
    config        - Environment-driven settings
    cli           - Command-line interface
"""

__version__ = "1.0.0"

from lodging_tax.config import EngineConfig
from lodging_tax.engine import BatchResult, TaxEngine
from lodging_tax.errors import (
    CalculationUnavailable,
    InternalConsistencyError,
    InvalidContext,
    InvalidRuleDefinition,
    TaxEngineError,
)
from lodging_tax.models import (
    CalculationContext,
    CalculationMethod,
    CalculationResult,
    TaxCategory,
    TaxRule,
)
from lodging_tax.store import RuleSnapshot, RuleStore

__all__ = [
    "BatchResult",
    "CalculationContext",
    "CalculationMethod",
    "CalculationResult",
    "CalculationUnavailable",
    "EngineConfig",
    "InternalConsistencyError",
    "InvalidContext",
    "InvalidRuleDefinition",
    "RuleSnapshot",
    "RuleStore",
    "TaxCategory",
    "TaxEngine",
    "TaxEngineError",
    "TaxRule",
]
