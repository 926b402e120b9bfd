"""
Typed data model for lodging tax and fee calculation.

Rules arrive from the rule store as loosely-typed records and are turned
into these immutable types at the boundary (see `lodging_tax.rules`).
Inside the engine a rule's charge is a closed tagged variant:
`PercentageCharge` or `FixedCharge`, never a bag of optional fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, localcontext
from enum import Enum
from typing import Optional, Union

from lodging_tax.errors import InvalidContext, InvalidRuleDefinition


class TaxCategory(Enum):
    """Tax/fee family; the grouping key of the category breakdown."""

    VAT = "VAT"
    GST = "GST"
    SERVICE = "service"
    LUXURY = "luxury"
    CITY = "city"
    TOURISM = "tourism"
    OCCUPANCY = "occupancy"
    RESORT_FEE = "resort-fee"
    FACILITY = "facility"
    CUSTOM = "custom"


class CalculationMethod(Enum):
    """How a fixed amount scales with the booking."""

    PER_BOOKING = "per_booking"
    PER_ROOM = "per_room"
    PER_ROOM_PER_NIGHT = "per_room_per_night"
    PER_GUEST = "per_guest"
    PER_GUEST_PER_NIGHT = "per_guest_per_night"


class ChargeCategory(Enum):
    """Ledger grouping label for a rule. Informational only."""

    ROOM_CHARGE = "room_charge"
    SERVICE_CHARGE = "service_charge"
    ADDITIONAL_SERVICE = "additional_service"
    GOVERNMENT = "government"
    LOCAL_AUTHORITY = "local_authority"
    FACILITY = "facility"


# Channel allow-list entry that matches every channel
ALL_CHANNELS = "all"

_HUNDRED = Decimal("100")

# Amount and count bounds. Within them every sum and product in a
# calculation is exact at the engine's 50-digit working precision.
MAX_AMOUNT = Decimal("1E28")
MAX_AMOUNT_PLACES = 6
MAX_UNITS = 1_000_000


def _too_precise(amount: Decimal) -> bool:
    with localcontext() as dctx:
        dctx.prec = 50
        return amount != amount.quantize(Decimal(1).scaleb(-MAX_AMOUNT_PLACES))



@dataclass(frozen=True)
class PercentageCharge:
    """Charge of `rate` percent of the effective base."""

    rate: Decimal


@dataclass(frozen=True)
class FixedCharge:
    """Fixed amount scaled by a calculation method."""

    amount: Decimal
    method: CalculationMethod


Charge = Union[PercentageCharge, FixedCharge]


@dataclass(frozen=True)
class Applicability:
    """
    Conjunctive predicate set a rule must satisfy.

    Empty allow-lists are unrestricted. The date window is half-open:
    `effective_from <= check_in < effective_to`. Amount thresholds are
    inclusive on both ends.
    """

    room_types: frozenset[str] = frozenset()
    channels: frozenset[str] = frozenset()
    guest_types: frozenset[str] = frozenset()
    guest_countries: frozenset[str] = frozenset()
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    min_base_amount: Optional[Decimal] = None
    max_base_amount: Optional[Decimal] = None

    @property
    def all_channels(self) -> bool:
        return not self.channels or ALL_CHANNELS in self.channels


@dataclass(frozen=True)
class ExemptionRules:
    """Stay-length bounds and guest exemptions. Zero means no bound."""

    minimum_stay_nights: int = 0
    maximum_stay_nights: int = 0
    exempt_guest_types: frozenset[str] = frozenset()
    exempt_countries: frozenset[str] = frozenset()


@dataclass(frozen=True)
class TaxRule:
    """A single tax or fee definition, immutable for one evaluation."""

    rule_id: str
    name: str
    category: TaxCategory
    charge: Charge
    is_compound: bool = False
    compound_order: Optional[int] = None
    applicability: Applicability = field(default_factory=Applicability)
    exemptions: ExemptionRules = field(default_factory=ExemptionRules)
    charge_category: ChargeCategory = ChargeCategory.ROOM_CHARGE
    is_active: bool = True
    description: str = ""
    legal_reference: str = ""
    accounting_code: str = ""

    def __post_init__(self) -> None:
        if not self.rule_id:
            raise InvalidRuleDefinition("rule id is required")
        if isinstance(self.charge, PercentageCharge):
            if not (Decimal("0") < self.charge.rate <= _HUNDRED):
                raise InvalidRuleDefinition(
                    f"rate {self.charge.rate} outside (0, 100]", self.rule_id
                )
        elif isinstance(self.charge, FixedCharge):
            if self.charge.amount < 0:
                raise InvalidRuleDefinition(
                    f"fixed amount {self.charge.amount} is negative", self.rule_id
                )
            if self.charge.amount >= MAX_AMOUNT or _too_precise(self.charge.amount):
                raise InvalidRuleDefinition(
                    f"fixed amount {self.charge.amount} must be below {MAX_AMOUNT} "
                    f"with at most {MAX_AMOUNT_PLACES} decimal places",
                    self.rule_id,
                )
            if not isinstance(self.charge.method, CalculationMethod):
                raise InvalidRuleDefinition(
                    "fixed charge requires a calculation method", self.rule_id
                )
        else:
            raise InvalidRuleDefinition(
                f"unsupported charge type {type(self.charge).__name__}",
                self.rule_id,
            )

        if self.is_compound and self.compound_order is None:
            raise InvalidRuleDefinition(
                "compound rule has no compound order", self.rule_id
            )

        app = self.applicability
        if (
            app.effective_from is not None
            and app.effective_to is not None
            and app.effective_to <= app.effective_from
        ):
            raise InvalidRuleDefinition(
                "effective_to must be after effective_from", self.rule_id
            )
        if (
            app.min_base_amount is not None
            and app.max_base_amount is not None
            and app.min_base_amount > app.max_base_amount
        ):
            raise InvalidRuleDefinition(
                "minimum amount exceeds maximum amount", self.rule_id
            )

    @property
    def is_percentage(self) -> bool:
        return isinstance(self.charge, PercentageCharge)

    @property
    def rate(self) -> Optional[Decimal]:
        return self.charge.rate if isinstance(self.charge, PercentageCharge) else None

    @property
    def fixed_amount(self) -> Optional[Decimal]:
        return self.charge.amount if isinstance(self.charge, FixedCharge) else None

    @property
    def calculation_method(self) -> Optional[CalculationMethod]:
        return self.charge.method if isinstance(self.charge, FixedCharge) else None


@dataclass(frozen=True)
class CalculationContext:
    """One calculation request: the base amount and the booking it belongs to."""

    base_amount: Decimal
    check_in_date: date
    room_count: int = 1
    guest_count: int = 1
    stay_nights: int = 1
    channel: str = "direct"
    room_type_id: Optional[str] = None
    guest_type: Optional[str] = None
    guest_country: Optional[str] = None

    def __post_init__(self) -> None:
        errors: dict[str, str] = {}
        if not isinstance(self.base_amount, Decimal):
            errors["baseAmount"] = "must be a decimal amount"
        elif not self.base_amount.is_finite() or self.base_amount <= 0:
            errors["baseAmount"] = "must be greater than zero"
        elif self.base_amount >= MAX_AMOUNT:
            errors["baseAmount"] = f"must be below {MAX_AMOUNT}"
        elif _too_precise(self.base_amount):
            errors["baseAmount"] = f"must have at most {MAX_AMOUNT_PLACES} decimal places"
        for name, label in (
            ("room_count", "roomCount"),
            ("guest_count", "guestCount"),
            ("stay_nights", "stayNights"),
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                errors[label] = "must be a whole number"
            elif value < 1:
                errors[label] = "must be at least 1"
            elif value > MAX_UNITS:
                errors[label] = f"must be at most {MAX_UNITS}"
        if not isinstance(self.check_in_date, date):
            errors["checkInDate"] = "must be a date"
        if not self.channel:
            errors["channel"] = "is required"
        if errors:
            raise InvalidContext(errors)


@dataclass(frozen=True)
class TaxLineItem:
    """Computed amount for one applicable rule."""

    rule_id: str
    rule_name: str
    category: TaxCategory
    charge_category: ChargeCategory
    base_amount_used: Decimal
    tax_amount: Decimal
    is_percentage: bool
    rate: Optional[Decimal]
    fixed_amount: Optional[Decimal]
    calculation_method: Optional[CalculationMethod]
    is_compound: bool
    compound_order: Optional[int]

    @classmethod
    def for_rule(
        cls, rule: TaxRule, base_used: Decimal, amount: Decimal
    ) -> "TaxLineItem":
        return cls(
            rule_id=rule.rule_id,
            rule_name=rule.name,
            category=rule.category,
            charge_category=rule.charge_category,
            base_amount_used=base_used,
            tax_amount=amount,
            is_percentage=rule.is_percentage,
            rate=rule.rate,
            fixed_amount=rule.fixed_amount,
            calculation_method=rule.calculation_method,
            is_compound=rule.is_compound,
            compound_order=rule.compound_order,
        )


@dataclass(frozen=True)
class CategoryTotal:
    """All line items of one category and their exact sum."""

    category: TaxCategory
    items: tuple[TaxLineItem, ...]
    total_amount: Decimal


@dataclass(frozen=True)
class CalculationResult:
    """Final breakdown for one request. Built fresh per call, never shared."""

    base_amount: Decimal
    tax_breakdown: tuple[TaxLineItem, ...]
    category_breakdown: dict[TaxCategory, CategoryTotal]
    total_tax_amount: Decimal
    total_amount: Decimal
    rejected_rules: tuple[str, ...] = ()

    @property
    def effective_rate(self) -> Decimal:
        """Total tax as a fraction of the base amount."""
        return self.total_tax_amount / self.base_amount
