"""Typed views over inventory rows."""

from __future__ import annotations

import datetime as dt
from typing import Any, Mapping

import msgspec


class Batch(msgspec.Struct, frozen=True, kw_only=True):
    """Ledger entry contributing quantity to an item's stock."""

    id: str
    quantity: int
    item_id: str | None = None
    batch_number: str | None = None
    expiry_date: dt.date | None = None


class InventoryItem(msgspec.Struct, frozen=True, kw_only=True):
    """Inventory item with its cached ``total_stock`` and batch ledger."""

    id: str
    tenant_id: str
    name: str
    total_stock: int
    branch_id: str | None = None
    batches: tuple[Batch, ...] = ()

    @property
    def batch_sum(self) -> int:
        return sum(batch.quantity for batch in self.batches)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "InventoryItem":
        """Build an item from a store row that includes its ``batches``."""

        payload = dict(row)
        for key in ("id", "tenant_id", "branch_id"):
            if payload.get(key) is not None:
                payload[key] = str(payload[key])
        batches = []
        for batch in payload.get("batches") or ():
            entry = dict(batch)
            for key in ("id", "item_id"):
                if entry.get(key) is not None:
                    entry[key] = str(entry[key])
            batches.append(entry)
        payload["batches"] = batches
        return msgspec.convert(payload, type=cls, strict=False)


__all__ = ["Batch", "InventoryItem"]
