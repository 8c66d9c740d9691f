"""Test support utilities for vetscope store, database and bootstrap tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence

from vetscope.entities import EntityKind
from vetscope.filters import Filter, Row
from vetscope.store import MemoryStore


@dataclass
class FakeResult:
    rows: List[dict[str, Any]]

    def result(self) -> List[dict[str, Any]]:
        return self.rows


class FakeConnection:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, list[Any], bool]] = []
        self._queued: list[list[dict[str, Any]]] = []

    def queue_result(self, rows: Iterable[dict[str, Any]]) -> None:
        self._queued.append([dict(row) for row in rows])

    async def execute(
        self,
        query: str,
        parameters: Sequence[Any] | None = None,
        *,
        prepared: bool = False,
    ) -> FakeResult:
        params = list(parameters or [])
        self.calls.append(("execute", query, params, prepared))
        if query.lstrip().upper().startswith("SET "):
            return FakeResult([])
        rows = self._queued.pop(0) if self._queued else []
        return FakeResult(rows)

    def queries(self) -> list[str]:
        return [query for _, query, _, _ in self.calls if not query.startswith("SET ")]


class _Acquire:
    def __init__(self, connection: FakeConnection) -> None:
        self._connection = connection

    async def __aenter__(self) -> FakeConnection:
        return self._connection

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


class FakePool:
    def __init__(self, connection: FakeConnection | None = None) -> None:
        self.connection = connection or FakeConnection()
        self.closed = False

    def acquire(self) -> _Acquire:
        return _Acquire(self.connection)

    def close(self) -> None:
        self.closed = True


def clinic_store() -> MemoryStore:
    """Two clinics, ``t1`` and ``t2``, with owners, pets and stock in both."""

    store = MemoryStore()
    store.add_rows(
        EntityKind.TENANT,
        {"id": "t1", "name": "Northside Vets"},
        {"id": "t2", "name": "Harbour Animal Clinic"},
    )
    store.add_rows(
        EntityKind.BRANCH,
        {"id": "b1", "tenant_id": "t1", "name": "North"},
        {"id": "b2", "tenant_id": "t1", "name": "East"},
        {"id": "b3", "tenant_id": "t2", "name": "Harbour"},
    )
    store.add_rows(
        EntityKind.USER,
        {"id": "u1", "tenant_id": "t1", "branch_id": "b1", "role": "ADMIN", "client_id": None},
        {"id": "u2", "tenant_id": "t1", "branch_id": "b1", "role": "VET", "client_id": None},
        {"id": "u3", "tenant_id": "t1", "branch_id": "b1", "role": "PET_OWNER", "client_id": "c1"},
        {"id": "u4", "tenant_id": "t1", "branch_id": "b1", "role": "PET_OWNER", "client_id": "c2"},
        {"id": "u5", "tenant_id": "t2", "branch_id": "b3", "role": "VET", "client_id": None},
    )
    store.add_rows(
        EntityKind.CLIENT,
        {"id": "c1", "tenant_id": "t1", "branch_id": "b1", "name": "Ada"},
        {"id": "c2", "tenant_id": "t1", "branch_id": "b2", "name": "Grace"},
        {"id": "c3", "tenant_id": "t2", "branch_id": "b3", "name": "Linus"},
    )
    store.add_rows(
        EntityKind.PATIENT,
        {"id": "p1", "tenant_id": "t1", "branch_id": "b1", "owner_id": "c1", "name": "Rex"},
        {"id": "p2", "tenant_id": "t1", "branch_id": "b2", "owner_id": "c2", "name": "Milo"},
        {"id": "p3", "tenant_id": "t2", "branch_id": "b3", "owner_id": "c3", "name": "Tux"},
    )
    store.add(
        "medical_notes",
        {"id": "n1", "patient_id": "p1", "text": "vaccinated"},
        {"id": "n2", "patient_id": "p2", "text": "limping"},
    )
    store.add("reminders", {"id": "r1", "patient_id": "p1", "due": "2026-11-01"})
    store.add_rows(
        EntityKind.INVOICE,
        {"id": "i1", "tenant_id": "t1", "branch_id": "b1", "client_id": "c1", "total": 120},
        {"id": "i2", "tenant_id": "t1", "branch_id": "b2", "client_id": "c2", "total": 80},
        {"id": "i3", "tenant_id": "t2", "branch_id": "b3", "client_id": "c3", "total": 45},
    )
    store.add_rows(
        EntityKind.INVENTORY_ITEM,
        {"id": "s1", "tenant_id": "t1", "branch_id": "b1", "name": "Amoxicillin", "total_stock": 15},
        {"id": "s2", "tenant_id": "t2", "branch_id": "b3", "name": "Meloxicam", "total_stock": 4},
    )
    store.add(
        "inventory_batches",
        {"id": "ba1", "item_id": "s1", "quantity": 10},
        {"id": "ba2", "item_id": "s1", "quantity": 5},
        {"id": "ba3", "item_id": "s2", "quantity": 4},
    )
    store.add_rows(
        EntityKind.SALE,
        {"id": "sa1", "tenant_id": "t1", "branch_id": "b1", "total": 30},
        {"id": "sa2", "tenant_id": "t2", "branch_id": "b3", "total": 12},
    )
    store.add_rows(
        EntityKind.SERVICE,
        {"id": "sv1", "tenant_id": "t1", "name": "Consultation"},
        {"id": "sv2", "tenant_id": "t2", "name": "Grooming"},
    )
    store.add_rows(
        EntityKind.APPOINTMENT,
        {"id": "a1", "tenant_id": "t1", "branch_id": "b1", "client_id": "c1", "patient_id": "p1"},
        {"id": "a2", "tenant_id": "t1", "branch_id": "b2", "client_id": "c2", "patient_id": "p2"},
        {"id": "a3", "tenant_id": "t2", "branch_id": "b3", "client_id": "c3", "patient_id": "p3"},
    )
    store.add_rows(
        EntityKind.EXPENSE,
        {"id": "e1", "tenant_id": "t1", "branch_id": "b1", "amount": 300},
    )
    store.add_rows(
        EntityKind.AUDIT_LOG,
        {"id": "l1", "tenant_id": "t1", "branch_id": "b1", "timestamp": "2026-10-01T09:00:00"},
        {"id": "l2", "tenant_id": "t1", "branch_id": "b1", "timestamp": "2026-10-02T09:00:00"},
    )
    store.add_rows(
        EntityKind.CHAT_MESSAGE,
        {"id": "m1", "tenant_id": "t1", "client_id": "c1", "timestamp": "2026-10-01T10:00:00", "text": "hi"},
        {"id": "m2", "tenant_id": "t1", "client_id": "c1", "timestamp": "2026-10-01T10:05:00", "text": "hello"},
        {"id": "m3", "tenant_id": "t1", "client_id": "c2", "timestamp": "2026-10-01T11:00:00", "text": "hey"},
        {"id": "m4", "tenant_id": "t2", "client_id": "c3", "timestamp": "2026-10-01T12:00:00", "text": "yo"},
    )
    store.add_rows(
        EntityKind.CONSULTATION,
        {"id": "co1", "tenant_id": "t1", "branch_id": "b1", "patient_id": "p1"},
    )
    store.add_rows(
        EntityKind.LAB_REQUEST,
        {"id": "lr1", "tenant_id": "t1", "branch_id": "b1", "patient_id": "p1", "test": "CBC"},
        {"id": "lr2", "tenant_id": "t1", "branch_id": "b2", "patient_id": "p2", "test": "Urinalysis"},
        {"id": "lr3", "tenant_id": "t2", "branch_id": "b3", "patient_id": "p3", "test": "X-ray"},
    )
    store.add_rows(
        EntityKind.BUDGET,
        {"id": "bu1", "tenant_id": "t1", "branch_id": "b1", "amount": 900},
    )
    return store


class RecordingStore:
    """Wrap a store and remember every find it was asked to run."""

    def __init__(self, inner: Any) -> None:
        self.inner = inner
        self.calls: list[tuple[EntityKind, Filter, tuple[str, ...], tuple[str, ...], int | None]] = []

    async def find(
        self,
        kind: EntityKind,
        where: Filter,
        *,
        include: Sequence[str] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> Sequence[Row]:
        self.calls.append((kind, where, tuple(include), tuple(order_by), limit))
        return await self.inner.find(kind, where, include=include, order_by=order_by, limit=limit)

    def kinds(self) -> set[EntityKind]:
        return {call[0] for call in self.calls}


class FailingStore(RecordingStore):
    """Raise for the configured kinds and delegate the rest."""

    def __init__(self, inner: Any, failing: Iterable[EntityKind], error: Exception | None = None) -> None:
        super().__init__(inner)
        self.failing = frozenset(failing)
        self.error = error or ConnectionError("connection reset by peer")

    async def find(self, kind: EntityKind, where: Filter, **kwargs: Any) -> Sequence[Row]:
        if kind in self.failing:
            self.calls.append((kind, where, (), (), None))
            raise self.error
        return await super().find(kind, where, **kwargs)


class SlowStore(RecordingStore):
    """Block the configured kinds until released or cancelled."""

    def __init__(self, inner: Any, slow: Iterable[EntityKind]) -> None:
        super().__init__(inner)
        self.slow = frozenset(slow)
        self.release = asyncio.Event()
        self.started: set[EntityKind] = set()
        self.cancelled: set[EntityKind] = set()

    async def find(self, kind: EntityKind, where: Filter, **kwargs: Any) -> Sequence[Row]:
        if kind in self.slow:
            self.started.add(kind)
            try:
                await self.release.wait()
            except asyncio.CancelledError:
                self.cancelled.add(kind)
                raise
        return await super().find(kind, where, **kwargs)


class MalformedStore(RecordingStore):
    """Answer the configured kinds with a canned, malformed response."""

    def __init__(self, inner: Any, responses: Mapping[EntityKind, Any]) -> None:
        super().__init__(inner)
        self.responses = dict(responses)

    async def find(self, kind: EntityKind, where: Filter, **kwargs: Any) -> Sequence[Row]:
        if kind in self.responses:
            self.calls.append((kind, where, (), (), None))
            return self.responses[kind]
        await asyncio.sleep(0.01)
        return await super().find(kind, where, **kwargs)


class LeakyStore(RecordingStore):
    """Append a foreign tenant's row to the results of ``kind``."""

    def __init__(self, inner: Any, kind: EntityKind, row: Row) -> None:
        super().__init__(inner)
        self.kind = kind
        self.row = dict(row)

    async def find(self, kind: EntityKind, where: Filter, **kwargs: Any) -> Sequence[Row]:
        rows = list(await super().find(kind, where, **kwargs))
        if kind is self.kind:
            rows.append(dict(self.row))
        return rows


__all__ = [
    "FailingStore",
    "FakeConnection",
    "FakePool",
    "FakeResult",
    "LeakyStore",
    "MalformedStore",
    "RecordingStore",
    "SlowStore",
    "clinic_store",
]
