"""Predicate objects describing which rows of an entity kind are readable.

Filters are plain data. Store adapters translate them (see
:mod:`vetscope.sql`) or evaluate them in process with :func:`matches`.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence, Union

import msgspec

Row = Mapping[str, Any]
RelationLookup = Callable[[str, Row], Sequence[Row]]


class Eq(msgspec.Struct, frozen=True, tag="eq"):
    field: str
    value: Any


class NotEq(msgspec.Struct, frozen=True, tag="ne"):
    field: str
    value: Any


class AllOf(msgspec.Struct, frozen=True, tag="all"):
    clauses: tuple["Filter", ...]


class AnyOf(msgspec.Struct, frozen=True, tag="any"):
    clauses: tuple["Filter", ...]


class Related(msgspec.Struct, frozen=True, tag="related"):
    """Match rows whose related parent row satisfies ``where``."""

    relation: str
    where: "Filter"


class MatchNone(msgspec.Struct, frozen=True, tag="none"):
    """Matches no row at all."""


class Unscoped(msgspec.Struct, frozen=True, tag="unscoped"):
    """Matches every row. Reserved for operational scans, never for principals."""


Filter = Union[Eq, NotEq, AllOf, AnyOf, Related, MatchNone, Unscoped]


def all_of(*clauses: Filter) -> Filter:
    if len(clauses) == 1:
        return clauses[0]
    return AllOf(tuple(clauses))


def any_of(*clauses: Filter) -> Filter:
    if len(clauses) == 1:
        return clauses[0]
    return AnyOf(tuple(clauses))


def matches(where: Filter, row: Row, lookup: RelationLookup | None = None) -> bool:
    """Evaluate ``where`` against a single row.

    ``lookup`` resolves a relation name to the related rows; it is only needed
    when ``where`` contains :class:`Related` clauses.
    """

    if isinstance(where, Eq):
        return where.field in row and row[where.field] == where.value
    if isinstance(where, NotEq):
        # SQL semantics: a NULL column never satisfies ``<>``.
        value = row.get(where.field)
        return value is not None and value != where.value
    if isinstance(where, AllOf):
        return all(matches(clause, row, lookup) for clause in where.clauses)
    if isinstance(where, AnyOf):
        return any(matches(clause, row, lookup) for clause in where.clauses)
    if isinstance(where, Related):
        if lookup is None:
            raise LookupError(f"relation '{where.relation}' cannot be followed without a lookup")
        return any(matches(where.where, parent, lookup) for parent in lookup(where.relation, row))
    if isinstance(where, MatchNone):
        return False
    if isinstance(where, Unscoped):
        return True
    raise TypeError(f"Unsupported filter: {where!r}")


def describe(where: Filter) -> str:
    """Render ``where`` as a compact, human readable expression."""

    if isinstance(where, Eq):
        return f"{where.field} = {where.value!r}"
    if isinstance(where, NotEq):
        return f"{where.field} != {where.value!r}"
    if isinstance(where, AllOf):
        return "(" + " AND ".join(describe(clause) for clause in where.clauses) + ")"
    if isinstance(where, AnyOf):
        return "(" + " OR ".join(describe(clause) for clause in where.clauses) + ")"
    if isinstance(where, Related):
        return f"{where.relation}.{describe(where.where)}"
    if isinstance(where, MatchNone):
        return "FALSE"
    if isinstance(where, Unscoped):
        return "TRUE"
    raise TypeError(f"Unsupported filter: {where!r}")


__all__ = [
    "AllOf",
    "AnyOf",
    "Eq",
    "Filter",
    "MatchNone",
    "NotEq",
    "Related",
    "RelationLookup",
    "Row",
    "Unscoped",
    "all_of",
    "any_of",
    "describe",
    "matches",
]
