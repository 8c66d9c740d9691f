"""PostgreSQL implementation of the store protocol."""

from __future__ import annotations

from typing import Any, Sequence

from .database import Database, DatabaseConnection, quote_identifier
from .entities import TABLES, EntityKind, relation_for, table_for
from .filters import AllOf, AnyOf, Eq, Filter, MatchNone, NotEq, Related, Row, Unscoped
from .store import parse_order

_KIND_BY_TABLE = {table: kind for kind, table in TABLES.items()}


class _FilterCompiler:
    def __init__(self, *, start: int = 1) -> None:
        self.parameters: list[Any] = []
        self._start = start
        self._aliases = 0

    def _param(self, value: Any) -> str:
        self.parameters.append(value)
        return f"${self._start + len(self.parameters) - 1}"

    def compile(self, kind: EntityKind | None, where: Filter, alias: str) -> str:
        if isinstance(where, Eq):
            column = _column(alias, where.field)
            if where.value is None:
                return f"{column} IS NULL"
            return f"{column} = {self._param(where.value)}"
        if isinstance(where, NotEq):
            column = _column(alias, where.field)
            if where.value is None:
                return f"{column} IS NOT NULL"
            return f"{column} <> {self._param(where.value)}"
        if isinstance(where, AllOf):
            if not where.clauses:
                return "TRUE"
            return "(" + " AND ".join(self.compile(kind, clause, alias) for clause in where.clauses) + ")"
        if isinstance(where, AnyOf):
            if not where.clauses:
                return "FALSE"
            return "(" + " OR ".join(self.compile(kind, clause, alias) for clause in where.clauses) + ")"
        if isinstance(where, Related):
            if kind is None:
                raise LookupError(f"relation '{where.relation}' has no owning entity kind")
            relation = relation_for(kind, where.relation)
            self._aliases += 1
            inner = f"r{self._aliases}"
            join = f"{_column(inner, relation.remote_field)} = {_column(alias, relation.local_field)}"
            condition = self.compile(_KIND_BY_TABLE.get(relation.table), where.where, inner)
            return (
                f"EXISTS (SELECT 1 FROM {quote_identifier(relation.table)} AS {quote_identifier(inner)}"
                f" WHERE {join} AND {condition})"
            )
        if isinstance(where, MatchNone):
            return "FALSE"
        if isinstance(where, Unscoped):
            return "TRUE"
        raise TypeError(f"Unsupported filter: {where!r}")


def compile_filter(kind: EntityKind, where: Filter, *, alias: str = "t0", start: int = 1) -> tuple[str, list[Any]]:
    """Compile ``where`` into a SQL boolean expression and its parameters."""

    compiler = _FilterCompiler(start=start)
    clause = compiler.compile(kind, where, alias)
    return clause, compiler.parameters


def build_select(
    kind: EntityKind,
    where: Filter,
    *,
    order_by: Sequence[str] = (),
    limit: int | None = None,
) -> tuple[str, list[Any]]:
    clause, parameters = compile_filter(kind, where)
    sql = f'SELECT "t0".* FROM {quote_identifier(table_for(kind))} AS "t0"'
    if clause != "TRUE":
        sql += f" WHERE {clause}"
    if order_by:
        fragments = []
        for expression in order_by:
            field, descending = parse_order(expression)
            fragments.append(f"{_column('t0', field)} {'DESC' if descending else 'ASC'}")
        sql += f" ORDER BY {', '.join(fragments)}"
    if limit is not None:
        parameters.append(limit)
        sql += f" LIMIT ${len(parameters)}"
    return sql, parameters


class SqlStore:
    """Runs scoped finds against the clinic database.

    Each find is one ``SELECT`` for the entity rows plus one ``ANY($1)``
    query per requested relation, all on the same pooled connection.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    async def find(
        self,
        kind: EntityKind,
        where: Filter,
        *,
        include: Sequence[str] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> Sequence[Row]:
        if isinstance(where, MatchNone):
            return []
        sql, parameters = build_select(kind, where, order_by=order_by, limit=limit)
        async with self.database.connection() as connection:
            rows = await connection.fetch_all(sql, parameters)
            for name in include:
                await self._attach(connection, kind, name, rows)
        return rows

    async def _attach(
        self,
        connection: DatabaseConnection,
        kind: EntityKind,
        name: str,
        rows: list[dict[str, Any]],
    ) -> None:
        relation = relation_for(kind, name)
        keys = sorted({row[relation.local_field] for row in rows if row.get(relation.local_field) is not None})
        grouped: dict[Any, list[dict[str, Any]]] = {}
        if keys:
            sql = (
                f"SELECT * FROM {quote_identifier(relation.table)}"
                f" WHERE {quote_identifier(relation.remote_field)} = ANY($1)"
            )
            for related in await connection.fetch_all(sql, [keys]):
                grouped.setdefault(related.get(relation.remote_field), []).append(related)
        for row in rows:
            related_rows = grouped.get(row.get(relation.local_field), [])
            if relation.many:
                row[name] = related_rows
            else:
                row[name] = related_rows[0] if related_rows else None


def _column(alias: str, field: str) -> str:
    return f"{quote_identifier(alias)}.{quote_identifier(field)}"


__all__ = ["SqlStore", "build_select", "compile_filter"]
