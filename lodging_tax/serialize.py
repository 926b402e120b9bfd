"""
Wire format and exports.

Produces:
- The calculation response payload (camelCase, decimal strings)
- User-visible error payloads
- JSON export documents
- pandas DataFrames and CSV files of a breakdown

Money and rates are always written as decimal strings. A float never
appears in any output so totals reconcile on the receiving side too.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd

from lodging_tax.errors import InvalidContext, TaxEngineError
from lodging_tax.models import CalculationContext, CalculationResult, TaxLineItem

GENERIC_FAILURE = "Tax calculation unavailable"


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    """Fixed-point string of a Decimal; never scientific notation."""
    if value is None:
        return None
    return format(value, "f")


def line_item_payload(item: TaxLineItem) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "taxId": item.rule_id,
        "taxName": item.rule_name,
        "taxType": item.category.value,
        "taxCategory": item.charge_category.value,
        "taxRate": decimal_str(item.rate),
        "isPercentage": item.is_percentage,
        "fixedAmount": decimal_str(item.fixed_amount),
        "calculationMethod": (
            item.calculation_method.value if item.calculation_method else None
        ),
        "baseAmount": decimal_str(item.base_amount_used),
        "taxAmount": decimal_str(item.tax_amount),
        "isCompound": item.is_compound,
    }
    if item.compound_order is not None:
        payload["compoundOrder"] = item.compound_order
    return payload


def to_response(result: CalculationResult) -> dict[str, Any]:
    """Render a result as the calculate endpoint's response body."""
    return {
        "totalTaxAmount": decimal_str(result.total_tax_amount),
        "totalAmount": decimal_str(result.total_amount),
        "taxBreakdown": [line_item_payload(i) for i in result.tax_breakdown],
        "categoryBreakdown": {
            category.value: {
                "category": category.value,
                "taxes": [line_item_payload(i) for i in group.items],
                "totalAmount": decimal_str(group.total_amount),
            }
            for category, group in result.category_breakdown.items()
        },
        "calculation": {
            "baseAmount": decimal_str(result.base_amount),
            "totalTaxAmount": decimal_str(result.total_tax_amount),
            "totalAmount": decimal_str(result.total_amount),
        },
    }


def context_payload(ctx: CalculationContext) -> dict[str, Any]:
    """Echo a context back in request shape."""
    return {
        "baseAmount": decimal_str(ctx.base_amount),
        "roomTypeId": ctx.room_type_id or "",
        "roomCount": ctx.room_count,
        "guestCount": ctx.guest_count,
        "stayNights": ctx.stay_nights,
        "channel": ctx.channel,
        "guestType": ctx.guest_type or "",
        "guestCountry": ctx.guest_country or "",
        "checkInDate": ctx.check_in_date.isoformat(),
    }


def to_error_payload(exc: TaxEngineError) -> dict[str, Any]:
    """
    User-visible error body.

    Context errors carry per-field messages. Everything else is reported
    generically so rule configuration never leaks to end users.
    """
    if isinstance(exc, InvalidContext):
        return {"error": "Invalid calculation request", "fields": dict(exc.errors)}
    return {"error": GENERIC_FAILURE}


def dumps(payload: Any) -> str:
    """Deterministic JSON text for a payload."""
    return json.dumps(payload, indent=2, ensure_ascii=False)


def export_json(
    result: CalculationResult,
    ctx: CalculationContext,
    path: Optional[Union[str, Path]] = None,
    calculated_at: Optional[datetime] = None,
) -> str:
    """
    Export a calculation with its parameters. Returns the JSON string.

    Written to `path` when given.
    """
    stamp = calculated_at or datetime.now(timezone.utc)
    document = {
        "calculationDate": stamp.isoformat(),
        "parameters": context_payload(ctx),
        "result": to_response(result),
    }
    text = dumps(document)
    if path:
        Path(path).write_text(text, encoding="utf-8")
    return text


# ---------------------------------------------------------------------------
# Tabular exports
# ---------------------------------------------------------------------------

_FRAME_COLUMNS = [
    "tax_id",
    "tax_name",
    "tax_type",
    "tax_category",
    "is_percentage",
    "tax_rate",
    "fixed_amount",
    "calculation_method",
    "is_compound",
    "compound_order",
    "base_amount",
    "tax_amount",
]


def breakdown_frame(result: CalculationResult) -> pd.DataFrame:
    """
    One row per line item.

    Amount columns hold Decimal objects (object dtype), not floats.
    """
    rows = [
        {
            "tax_id": i.rule_id,
            "tax_name": i.rule_name,
            "tax_type": i.category.value,
            "tax_category": i.charge_category.value,
            "is_percentage": i.is_percentage,
            "tax_rate": i.rate,
            "fixed_amount": i.fixed_amount,
            "calculation_method": (
                i.calculation_method.value if i.calculation_method else None
            ),
            "is_compound": i.is_compound,
            "compound_order": i.compound_order,
            "base_amount": i.base_amount_used,
            "tax_amount": i.tax_amount,
        }
        for i in result.tax_breakdown
    ]
    frame = pd.DataFrame(rows, columns=_FRAME_COLUMNS)
    return frame.astype({"compound_order": "Int64"})


def category_frame(result: CalculationResult) -> pd.DataFrame:
    """One row per category with its item count and total."""
    rows = [
        {
            "category": category.value,
            "tax_count": len(group.items),
            "total_amount": group.total_amount,
        }
        for category, group in result.category_breakdown.items()
    ]
    return pd.DataFrame(rows, columns=["category", "tax_count", "total_amount"])


def export_csv(result: CalculationResult, path: Optional[Union[str, Path]] = None) -> str:
    """Export the line-item breakdown to CSV. Returns the CSV string."""
    frame = breakdown_frame(result)
    for column in ("tax_rate", "fixed_amount", "base_amount", "tax_amount"):
        frame[column] = frame[column].map(decimal_str)
    csv_str = frame.to_csv(index=False)
    if path:
        Path(path).write_text(csv_str, encoding="utf-8")
    return csv_str


def read_requests_csv(path: Union[str, Path]) -> list[dict[str, Any]]:
    """
    Load calculation requests from a CSV with request-shaped headers.

    Every cell is read as text; the boundary parser does the typing, so
    no amount is ever parsed as a float.
    """
    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    return [
        {k: v for k, v in row.items() if v != ""}
        for row in frame.to_dict(orient="records")
    ]
