"""Store protocol and the in-process store used by tooling and tests."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol, Sequence

from .entities import EntityKind, Relation, relation_for, table_for
from .filters import Filter, Row, matches


class Store(Protocol):
    """Filtered-find access to the relational store.

    ``find`` returns the matching rows, each extended with the requested
    ``include`` relations. An empty sequence is a valid answer; failures raise.
    """

    async def find(
        self,
        kind: EntityKind,
        where: Filter,
        *,
        include: Sequence[str] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> Sequence[Row]: ...


def parse_order(expression: str) -> tuple[str, bool]:
    """Split ``"field desc"`` into ``("field", True)``."""

    lowered = expression.lower()
    if lowered.endswith(" desc"):
        return expression[: -len(" desc")].strip(), True
    if lowered.endswith(" asc"):
        return expression[: -len(" asc")].strip(), False
    return expression.strip(), False


class MemoryStore:
    """Rows held in plain dictionaries keyed by table name."""

    def __init__(self, tables: Mapping[str, Iterable[Mapping[str, Any]]] | None = None) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {}
        for table, rows in (tables or {}).items():
            self.add(table, *rows)

    def add(self, table: str, *rows: Mapping[str, Any]) -> None:
        self._tables.setdefault(table, []).extend(dict(row) for row in rows)

    def add_rows(self, kind: EntityKind, *rows: Mapping[str, Any]) -> None:
        self.add(table_for(kind), *rows)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self._tables.get(table, [])

    async def find(
        self,
        kind: EntityKind,
        where: Filter,
        *,
        include: Sequence[str] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> Sequence[Row]:
        def lookup(name: str, row: Row) -> Sequence[Row]:
            return self._related(relation_for(kind, name), row)

        selected = [row for row in self.rows(table_for(kind)) if matches(where, row, lookup)]
        for expression in reversed(tuple(order_by)):
            field, descending = parse_order(expression)
            selected.sort(key=lambda row: _sort_key(row.get(field)), reverse=descending)
        if limit is not None:
            selected = selected[:limit]
        results: list[Row] = []
        for row in selected:
            payload = dict(row)
            for name in include:
                relation = relation_for(kind, name)
                related = self._related(relation, row)
                if relation.many:
                    payload[name] = [dict(item) for item in related]
                else:
                    payload[name] = dict(related[0]) if related else None
            results.append(payload)
        return results

    def _related(self, relation: Relation, row: Row) -> list[Row]:
        key = row.get(relation.local_field)
        if key is None:
            return []
        return [candidate for candidate in self.rows(relation.table) if candidate.get(relation.remote_field) == key]


def _sort_key(value: Any) -> tuple[int, Any]:
    # NULLs sort last, as PostgreSQL does for ascending order.
    if value is None:
        return (1, 0)
    return (0, value)


__all__ = ["MemoryStore", "Store", "parse_order"]
