"""Read-only verification of cached stock totals against the batch ledger.

Every inventory item caches ``total_stock``, which must equal the sum of its
batch quantities and never go negative. This module reports items where that
no longer holds. It never writes: a drifted total is a data defect to be
investigated, and silently rewriting it would hide the sale or adjustment
that caused it.

The scan takes no locks and can run next to normal traffic, so findings
describe the rows as they were read, not a transactional proof of drift.
"""

from __future__ import annotations

from enum import Enum
from typing import AsyncIterator, Iterable, Iterator, Sequence

import msgspec

from .entities import EAGER_RELATIONS, EntityKind
from .filters import Eq, Filter, Unscoped
from .models import InventoryItem
from .observability import Observability
from .store import Store


class FindingKind(str, Enum):
    MISMATCH = "mismatch"
    NEGATIVE_STOCK = "negative_stock"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class Severity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class IntegrityFinding(msgspec.Struct, frozen=True):
    item_id: str
    item_name: str
    tenant_id: str
    kind: FindingKind
    total_stock: int
    batch_sum: int | None = None

    @property
    def severity(self) -> Severity:
        if self.kind is FindingKind.NEGATIVE_STOCK:
            return Severity.CRITICAL
        return Severity.WARNING

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL


class UnreadableItem(msgspec.Struct, frozen=True):
    """An inventory row that could not be read as an item, so was not checked."""

    item_id: str
    tenant_id: str | None
    reason: str


class IntegrityReport(msgspec.Struct, frozen=True):
    items_checked: int
    findings: tuple[IntegrityFinding, ...]
    unreadable: tuple[UnreadableItem, ...] = ()

    @property
    def mismatches(self) -> int:
        return sum(1 for finding in self.findings if finding.kind is FindingKind.MISMATCH)

    @property
    def negative_stock(self) -> int:
        return sum(1 for finding in self.findings if finding.kind is FindingKind.NEGATIVE_STOCK)

    @property
    def clean(self) -> bool:
        return not self.findings and not self.unreadable


def evaluate_item(item: InventoryItem) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    batch_sum = item.batch_sum
    if item.total_stock != batch_sum:
        findings.append(
            IntegrityFinding(
                item_id=item.id,
                item_name=item.name,
                tenant_id=item.tenant_id,
                kind=FindingKind.MISMATCH,
                total_stock=item.total_stock,
                batch_sum=batch_sum,
            )
        )
    if item.total_stock < 0:
        findings.append(
            IntegrityFinding(
                item_id=item.id,
                item_name=item.name,
                tenant_id=item.tenant_id,
                kind=FindingKind.NEGATIVE_STOCK,
                total_stock=item.total_stock,
            )
        )
    return findings


def evaluate(items: Iterable[InventoryItem]) -> Iterator[IntegrityFinding]:
    for item in items:
        yield from evaluate_item(item)


class StockCheck:
    """One restartable scan; every ``async for`` re-reads the store.

    Rows that cannot be read as an item are skipped and reported through
    :meth:`report` instead of aborting the scan. A scan keeps no state
    between reads, so concurrent iterations do not interfere.
    """

    def __init__(self, store: Store, where: Filter, observability: Observability | None = None) -> None:
        self._store = store
        self._where = where
        self._observability = observability

    async def _read(self) -> tuple[list[InventoryItem], list[UnreadableItem]]:
        rows = await self._store.find(
            EntityKind.INVENTORY_ITEM,
            self._where,
            include=EAGER_RELATIONS[EntityKind.INVENTORY_ITEM],
            order_by=("id",),
        )
        items: list[InventoryItem] = []
        unreadable: list[UnreadableItem] = []
        for row in rows:
            try:
                items.append(InventoryItem.from_row(row))
            except (msgspec.ValidationError, TypeError, ValueError) as exc:
                tenant_id = row.get("tenant_id")
                entry = UnreadableItem(
                    item_id=str(row.get("id")),
                    tenant_id=None if tenant_id is None else str(tenant_id),
                    reason=f"{type(exc).__name__}: {exc}",
                )
                if self._observability is not None:
                    self._observability.on_integrity_unreadable(entry)
                unreadable.append(entry)
        return items, unreadable

    async def items(self) -> Sequence[InventoryItem]:
        items, _ = await self._read()
        return items

    def _emit(self, items: Iterable[InventoryItem]) -> Iterator[IntegrityFinding]:
        for finding in evaluate(items):
            if self._observability is not None:
                self._observability.on_integrity_finding(finding)
            yield finding

    def __aiter__(self) -> AsyncIterator[IntegrityFinding]:
        return self._scan()

    async def _scan(self) -> AsyncIterator[IntegrityFinding]:
        items, _ = await self._read()
        for finding in self._emit(items):
            yield finding

    async def report(self) -> IntegrityReport:
        """Read the store once and return the findings with the item count."""

        items, unreadable = await self._read()
        return IntegrityReport(
            items_checked=len(items),
            findings=tuple(self._emit(items)),
            unreadable=tuple(unreadable),
        )


class StockIntegrityChecker:
    """Compare each item's cached total with the sum of its batches.

    ``tenant_id`` restricts the scan to one clinic; by default every tenant's
    inventory is read, which is what the operational job wants.
    """

    def __init__(self, *, tenant_id: str | None = None, observability: Observability | None = None) -> None:
        self.tenant_id = tenant_id
        self.observability = observability

    def _where(self) -> Filter:
        if self.tenant_id is None:
            return Unscoped()
        return Eq("tenant_id", self.tenant_id)

    def check(self, store: Store) -> StockCheck:
        return StockCheck(store, self._where(), self.observability)

    async def collect(self, store: Store) -> IntegrityReport:
        report = await self.check(store).report()
        if self.observability is not None:
            self.observability.on_integrity_complete(report)
        return report


__all__ = [
    "FindingKind",
    "IntegrityFinding",
    "IntegrityReport",
    "Severity",
    "StockCheck",
    "StockIntegrityChecker",
    "UnreadableItem",
    "evaluate",
    "evaluate_item",
]
