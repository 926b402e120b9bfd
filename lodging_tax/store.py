"""
Rule store: immutable per-property rule snapshots.

The store hands out `RuleSnapshot` values. Publishing a new rule set
builds a fresh snapshot and swaps the reference (read-copy-update), so a
calculation that already holds a snapshot keeps seeing exactly that rule
version while newer requests pick up the replacement.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Any, Union

from lodging_tax.models import TaxRule

logger = logging.getLogger(__name__)

RuleRecord = Union[TaxRule, Mapping[str, Any]]


def _freeze(value: Any) -> Any:
    """Deep read-only copy of a JSON-like record."""
    if isinstance(value, TaxRule):
        return value
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class RuleSnapshot:
    """Point-in-time copy of all rule definitions for one property."""

    property_id: str
    version: int
    rules: tuple[RuleRecord, ...]
    published_at: datetime

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)


class RuleStore:
    """
    Per-property snapshot holder.

    Readers call `current_rules()` without locking; writers serialise on
    a lock and replace the whole per-property mapping in one assignment.
    """

    def __init__(self) -> None:
        self._write_lock = threading.Lock()
        self._snapshots: Mapping[str, RuleSnapshot] = MappingProxyType({})

    def current_rules(self, property_id: str) -> RuleSnapshot:
        """Return the current snapshot for a property (empty if none published)."""
        snapshot = self._snapshots.get(property_id)
        if snapshot is None:
            return RuleSnapshot(
                property_id=property_id,
                version=0,
                rules=(),
                published_at=datetime.fromtimestamp(0, tz=timezone.utc),
            )
        return snapshot

    def publish(self, property_id: str, records: Iterable[RuleRecord]) -> RuleSnapshot:
        """Replace the rule set of a property. Returns the new snapshot."""
        frozen = tuple(_freeze(r) for r in records)
        with self._write_lock:
            previous = self._snapshots.get(property_id)
            snapshot = RuleSnapshot(
                property_id=property_id,
                version=(previous.version + 1) if previous else 1,
                rules=frozen,
                published_at=datetime.now(timezone.utc),
            )
            updated = dict(self._snapshots)
            updated[property_id] = snapshot
            self._snapshots = MappingProxyType(updated)

        logger.info(
            "Published %d rules for property %s (version %d)",
            len(frozen), property_id, snapshot.version,
        )
        return snapshot

    def property_ids(self) -> list[str]:
        return sorted(self._snapshots)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "RuleStore":
        """
        Build a store from a JSON document.

        Accepted shapes:
            {"properties": {"<id>": [rule, ...], ...}}
            {"<id>": [rule, ...], ...}
        Numbers are parsed as Decimal so no rate passes through a float.
        """
        text = Path(path).read_text(encoding="utf-8")
        data = json.loads(text, parse_float=Decimal)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object of properties")
        properties = data.get("properties", data)
        if not isinstance(properties, dict):
            raise ValueError(f"{path}: 'properties' must be an object")

        store = cls()
        for property_id, records in properties.items():
            if not isinstance(records, list):
                raise ValueError(
                    f"{path}: rules for property {property_id!r} must be a list"
                )
            store.publish(str(property_id), records)
        return store
