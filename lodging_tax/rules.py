"""
Boundary conversion from loosely-typed input into the typed core.

Rule records come from the rule store as plain mappings using the admin
console's camelCase keys. Calculation requests arrive the same way. Both
are validated here and never trusted as already correct: a bad rule
raises InvalidRuleDefinition, a bad request raises InvalidContext with
field-level detail.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from lodging_tax.errors import InvalidContext, InvalidRuleDefinition
from lodging_tax.models import (
    Applicability,
    CalculationContext,
    CalculationMethod,
    ChargeCategory,
    ExemptionRules,
    FixedCharge,
    PercentageCharge,
    TaxCategory,
    TaxRule,
)


# Spellings used by the rule authoring form, mapped onto the category enum
_CATEGORY_ALIASES: dict[str, TaxCategory] = {
    "vat": TaxCategory.VAT,
    "gst": TaxCategory.GST,
    "service": TaxCategory.SERVICE,
    "service_tax": TaxCategory.SERVICE,
    "luxury": TaxCategory.LUXURY,
    "luxury_tax": TaxCategory.LUXURY,
    "city": TaxCategory.CITY,
    "city_tax": TaxCategory.CITY,
    "tourism": TaxCategory.TOURISM,
    "tourism_tax": TaxCategory.TOURISM,
    "occupancy": TaxCategory.OCCUPANCY,
    "occupancy_tax": TaxCategory.OCCUPANCY,
    "resort-fee": TaxCategory.RESORT_FEE,
    "resort_fee": TaxCategory.RESORT_FEE,
    "facility": TaxCategory.FACILITY,
    "facility_tax": TaxCategory.FACILITY,
    "custom": TaxCategory.CUSTOM,
}

_METHOD_ALIASES: dict[str, CalculationMethod] = {
    m.value: m for m in CalculationMethod
}
# Legacy form value; nights are always counted per room
_METHOD_ALIASES["per_night"] = CalculationMethod.PER_ROOM_PER_NIGHT


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("boolean is not an amount")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"not a decimal: {value!r}") from None
    else:
        raise ValueError(f"not a decimal: {value!r}")
    if not result.is_finite():
        raise ValueError(f"not a finite amount: {value!r}")
    return result


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a count")
    if isinstance(value, int):
        return value
    if isinstance(value, (str, Decimal, float)):
        dec = _to_decimal(value)
        if dec != dec.to_integral_value():
            raise ValueError(f"not a whole number: {value!r}")
        return int(dec)
    raise ValueError(f"not a whole number: {value!r}")


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            # Accept full ISO timestamps, keep the calendar date only
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValueError(f"not an ISO date: {value!r}") from None
    raise ValueError(f"not a date: {value!r}")


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0", ""):
            return False
    if isinstance(value, int):
        return bool(value)
    raise ValueError(f"not a boolean: {value!r}")


def _id_set(values: Any, upper: bool = False) -> frozenset[str]:
    """Normalise an allow-list. Entries may be ids or {"_id": ...} objects."""
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = values.split(",")
    if not isinstance(values, Iterable):
        raise ValueError(f"not a list: {values!r}")
    out: set[str] = set()
    for v in values:
        if isinstance(v, Mapping):
            v = _first(v, "_id", "id", "code")
        text = _optional_text(v)
        if text:
            out.add(text.upper() if upper else text)
    return frozenset(out)


def normalize_country(value: Optional[str]) -> Optional[str]:
    text = _optional_text(value)
    return text.upper() if text else None


# ---------------------------------------------------------------------------
# Rule records
# ---------------------------------------------------------------------------


def parse_category(value: Any) -> TaxCategory:
    if isinstance(value, TaxCategory):
        return value
    key = str(value or "").strip()
    category = _CATEGORY_ALIASES.get(key.lower())
    if category is None:
        raise ValueError(f"unknown tax category {key!r}")
    return category


def parse_method(value: Any) -> CalculationMethod:
    if isinstance(value, CalculationMethod):
        return value
    method = _METHOD_ALIASES.get(str(value or "").strip().lower())
    if method is None:
        raise ValueError(f"unknown calculation method {value!r}")
    return method


def _parse_charge(record: Mapping[str, Any]):
    is_percentage = _to_bool(record.get("isPercentage"), True)
    if is_percentage:
        raw_rate = _first(record, "taxRate", "rate")
        if raw_rate is None:
            raise ValueError("percentage rule has no rate")
        return PercentageCharge(rate=_to_decimal(raw_rate))

    raw_amount = _first(record, "fixedAmount", "amount")
    if raw_amount is None:
        raise ValueError("fixed rule has no fixed amount")
    raw_method = _first(record, "calculationMethod", "method")
    if raw_method is None or raw_method == "":
        raise ValueError("fixed rule has no calculation method")
    return FixedCharge(amount=_to_decimal(raw_amount), method=parse_method(raw_method))


def _parse_compounding(record: Mapping[str, Any]) -> tuple[bool, Optional[int]]:
    is_compound = _to_bool(_first(record, "isCompoundTax", "isCompound"), False)
    raw_order = record.get("compoundOrder")
    if not is_compound:
        return False, None
    if raw_order is None or raw_order == "":
        raise ValueError("compound rule has no compound order")
    order = _to_int(raw_order)
    if order <= 0:
        raise ValueError("compound order must be greater than 0")
    return True, order


def _parse_applicability(record: Mapping[str, Any]) -> Applicability:
    raw_from = _first(record, "validFrom", "effectiveFrom")
    raw_to = _first(record, "validTo", "effectiveTo")
    raw_min = _first(record, "minimumAmount", "minBaseAmount")
    raw_max = _first(record, "maximumAmount", "maxBaseAmount")
    return Applicability(
        room_types=_id_set(record.get("applicableRoomTypes")),
        channels=_id_set(record.get("applicableChannels")),
        guest_types=_id_set(record.get("applicableGuestTypes")),
        guest_countries=_id_set(record.get("applicableCountries"), upper=True),
        effective_from=_to_date(raw_from) if raw_from not in (None, "") else None,
        effective_to=_to_date(raw_to) if raw_to not in (None, "") else None,
        min_base_amount=_to_decimal(raw_min) if raw_min not in (None, "") else None,
        max_base_amount=_to_decimal(raw_max) if raw_max not in (None, "") else None,
    )


def _parse_exemptions(raw: Any) -> ExemptionRules:
    if raw is None:
        return ExemptionRules()
    if not isinstance(raw, Mapping):
        raise ValueError("exemptionRules must be an object")
    return ExemptionRules(
        minimum_stay_nights=_to_int(raw.get("minimumStayNights") or 0),
        maximum_stay_nights=_to_int(raw.get("maximumStayNights") or 0),
        exempt_guest_types=_id_set(raw.get("exemptGuestTypes")),
        exempt_countries=_id_set(raw.get("exemptCountries"), upper=True),
    )


def rule_id_of(record: Any) -> Optional[str]:
    """Best-effort id of a rule record, for logging."""
    if isinstance(record, TaxRule):
        return record.rule_id
    if isinstance(record, Mapping):
        return _optional_text(_first(record, "_id", "id", "taxId"))
    return None


def parse_rule(record: Mapping[str, Any]) -> TaxRule:
    """
    Convert one rule-store record into a TaxRule.

    Raises InvalidRuleDefinition naming the rule id when the record is
    malformed. Nothing is defaulted that would change a tax amount.
    """
    if not isinstance(record, Mapping):
        raise InvalidRuleDefinition(f"rule record must be a mapping, got {type(record).__name__}")

    rule_id = rule_id_of(record)
    if rule_id is None:
        raise InvalidRuleDefinition("rule record has no id")

    try:
        name = _optional_text(_first(record, "taxName", "name")) or rule_id
        category = parse_category(_first(record, "taxType", "category"))
        charge = _parse_charge(record)
        is_compound, compound_order = _parse_compounding(record)
        applicability = _parse_applicability(record)
        exemptions = _parse_exemptions(record.get("exemptionRules"))
        raw_ledger = _optional_text(record.get("taxCategory"))
        charge_category = (
            ChargeCategory(raw_ledger) if raw_ledger else ChargeCategory.ROOM_CHARGE
        )
        is_active = _to_bool(record.get("isActive"), True)
    except (ValueError, TypeError) as e:
        raise InvalidRuleDefinition(str(e), rule_id) from e

    return TaxRule(
        rule_id=rule_id,
        name=name,
        category=category,
        charge=charge,
        is_compound=is_compound,
        compound_order=compound_order,
        applicability=applicability,
        exemptions=exemptions,
        charge_category=charge_category,
        is_active=is_active,
        description=str(record.get("description") or ""),
        legal_reference=str(record.get("legalReference") or ""),
        accounting_code=str(record.get("accountingCode") or ""),
    )


# ---------------------------------------------------------------------------
# Calculation requests
# ---------------------------------------------------------------------------


def parse_context(payload: Mapping[str, Any]) -> CalculationContext:
    """
    Validate a calculation request payload.

    Every field is checked before raising so the caller gets the full
    list of problems at once.
    """
    if not isinstance(payload, Mapping):
        raise InvalidContext({"request": "must be a JSON object"})

    errors: dict[str, str] = {}
    values: dict[str, Any] = {}

    raw_base = payload.get("baseAmount")
    if raw_base is None or raw_base == "":
        errors["baseAmount"] = "is required"
    else:
        try:
            values["base_amount"] = _to_decimal(raw_base)
        except ValueError:
            errors["baseAmount"] = "must be a decimal amount"

    for key, attr in (
        ("roomCount", "room_count"),
        ("guestCount", "guest_count"),
        ("stayNights", "stay_nights"),
    ):
        raw = payload.get(key)
        if raw is None or raw == "":
            values[attr] = 1
            continue
        try:
            values[attr] = _to_int(raw)
        except ValueError:
            errors[key] = "must be a whole number"

    raw_date = payload.get("checkInDate")
    if raw_date is None or raw_date == "":
        errors["checkInDate"] = "is required"
    else:
        try:
            values["check_in_date"] = _to_date(raw_date)
        except ValueError:
            errors["checkInDate"] = "must be an ISO date (YYYY-MM-DD)"

    if errors:
        raise InvalidContext(errors)

    return CalculationContext(
        channel=_optional_text(payload.get("channel")) or "direct",
        room_type_id=_optional_text(payload.get("roomTypeId")),
        guest_type=_optional_text(payload.get("guestType")),
        guest_country=normalize_country(payload.get("guestCountry")),
        **values,
    )
