from __future__ import annotations

import pytest

from vetscope.entities import EntityKind
from vetscope.filters import AllOf, Eq, Related, Unscoped
from vetscope.store import MemoryStore, parse_order
from tests.support import clinic_store


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("timestamp", ("timestamp", False)),
        ("timestamp desc", ("timestamp", True)),
        ("timestamp DESC", ("timestamp", True)),
        ("name asc", ("name", False)),
    ],
)
def test_parse_order(expression: str, expected: tuple[str, bool]) -> None:
    assert parse_order(expression) == expected


@pytest.mark.asyncio
async def test_find_filters_by_tenant() -> None:
    store = clinic_store()
    rows = await store.find(EntityKind.INVOICE, Eq("tenant_id", "t1"))
    assert [row["id"] for row in rows] == ["i1", "i2"]


@pytest.mark.asyncio
async def test_find_orders_and_limits() -> None:
    store = clinic_store()
    rows = await store.find(
        EntityKind.CHAT_MESSAGE,
        Eq("tenant_id", "t1"),
        order_by=("timestamp desc",),
        limit=2,
    )
    assert [row["id"] for row in rows] == ["m3", "m2"]


@pytest.mark.asyncio
async def test_find_sorts_nulls_last() -> None:
    store = MemoryStore(
        {"expenses": [{"id": 1, "tenant_id": "t1", "amount": None}, {"id": 2, "tenant_id": "t1", "amount": 5}]}
    )
    rows = await store.find(EntityKind.EXPENSE, Unscoped(), order_by=("amount",))
    assert [row["id"] for row in rows] == [2, 1]


@pytest.mark.asyncio
async def test_find_attaches_included_relations() -> None:
    store = clinic_store()
    rows = await store.find(
        EntityKind.PATIENT,
        Eq("tenant_id", "t1"),
        include=("notes", "attachments", "reminders"),
    )
    by_id = {row["id"]: row for row in rows}
    assert [note["id"] for note in by_id["p1"]["notes"]] == ["n1"]
    assert by_id["p1"]["attachments"] == []
    assert [reminder["id"] for reminder in by_id["p1"]["reminders"]] == ["r1"]
    assert [note["id"] for note in by_id["p2"]["notes"]] == ["n2"]


@pytest.mark.asyncio
async def test_find_to_one_relation() -> None:
    store = clinic_store()
    rows = await store.find(EntityKind.LAB_REQUEST, Eq("id", "lr1"), include=("patient",))
    assert rows[0]["patient"]["id"] == "p1"


@pytest.mark.asyncio
async def test_find_follows_related_filter() -> None:
    store = clinic_store()
    rows = await store.find(
        EntityKind.LAB_REQUEST,
        AllOf((Eq("tenant_id", "t1"), Related("patient", Eq("owner_id", "c1")))),
    )
    assert [row["id"] for row in rows] == ["lr1"]


@pytest.mark.asyncio
async def test_find_returns_copies() -> None:
    store = clinic_store()
    rows = await store.find(EntityKind.CLIENT, Eq("id", "c1"))
    rows[0]["name"] = "changed"
    again = await store.find(EntityKind.CLIENT, Eq("id", "c1"))
    assert again[0]["name"] == "Ada"


@pytest.mark.asyncio
async def test_unknown_relation_is_an_error() -> None:
    store = clinic_store()
    with pytest.raises(LookupError):
        await store.find(EntityKind.CLIENT, Unscoped(), include=("pets",))


@pytest.mark.asyncio
async def test_empty_table_is_a_valid_answer() -> None:
    assert await MemoryStore().find(EntityKind.BUDGET, Unscoped()) == []
