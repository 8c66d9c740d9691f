"""PostgreSQL database integration built on top of :mod:`psqlpy`."""

from __future__ import annotations

import inspect
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Mapping, Sequence

import msgspec

from .exceptions import StoreError


class DatabaseError(StoreError):
    """Raised when the database integration cannot satisfy an operation."""


PoolFactory = Callable[[Mapping[str, Any]], Any]


class PoolConfig(msgspec.Struct, frozen=True):
    """Configuration values passed to :class:`psqlpy.ConnectionPool`."""

    dsn: str | None = None
    host: str | None = None
    port: int | None = None
    db_name: str | None = None
    username: str | None = None
    password: str | None = None
    application_name: str | None = "vetscope"
    max_db_pool_size: int = 10
    connect_timeout_sec: int | None = None
    options: dict[str, str] = msgspec.field(default_factory=dict)


class DatabaseConfig(msgspec.Struct, frozen=True):
    """High level configuration for :class:`Database`.

    Clinic rows live side by side in one schema and are partitioned by their
    ``tenant_id`` column, so a single search path serves every tenant.
    """

    pool: PoolConfig = PoolConfig()
    schema: str = "public"
    search_path: tuple[str, ...] = ("public",)
    default_role: str | None = None


@dataclass(slots=True)
class DatabaseResult:
    """Normalized representation of a query result."""

    rows: list[dict[str, Any]]


class DatabaseConnection:
    """Thin wrapper adding ergonomic helpers to a raw psqlpy connection."""

    def __init__(self, raw_connection: Any) -> None:
        self._raw = raw_connection

    async def execute(
        self,
        query: str,
        parameters: Sequence[Any] | None = None,
        *,
        prepared: bool = False,
    ) -> DatabaseResult:
        payload = list(parameters) if parameters is not None else None
        result = await self._raw.execute(query, payload, prepared=prepared)
        return DatabaseResult(_coerce_rows(result))

    async def fetch_all(
        self,
        query: str,
        parameters: Sequence[Any] | None = None,
        *,
        prepared: bool = False,
    ) -> list[dict[str, Any]]:
        return (await self.execute(query, parameters, prepared=prepared)).rows

    async def set_search_path(self, schemas: Sequence[str]) -> None:
        quoted = ", ".join(quote_identifier(name) for name in schemas)
        await self.execute(f"SET search_path TO {quoted}")

    async def set_role(self, role: str | None) -> None:
        if role is None:
            return
        await self.execute(f"SET ROLE {quote_identifier(role)}")


class Database:
    """Pooled access to the clinic database."""

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        pool: Any | None = None,
        pool_factory: PoolFactory | None = None,
    ) -> None:
        self.config = config
        self._pool = pool
        self._pool_factory = pool_factory or _default_pool_factory

    async def startup(self) -> None:
        """Instantiate the underlying :class:`psqlpy.ConnectionPool` if needed."""

        self._ensure_pool()

    async def shutdown(self) -> None:
        """Dispose the connection pool."""

        if self._pool is None:
            return
        close = getattr(self._pool, "close", None)
        if close is None:
            self._pool = None
            return
        result = close()
        if inspect.isawaitable(result):  # pragma: no cover - depends on pool implementation
            await result
        self._pool = None

    @asynccontextmanager
    async def connection(self, *, role: str | None = None) -> AsyncIterator[DatabaseConnection]:
        pool = self._ensure_pool()
        async with pool.acquire() as raw_connection:
            connection = DatabaseConnection(raw_connection)
            await connection.set_search_path(self._search_path())
            await connection.set_role(role or self.config.default_role)
            yield connection

    def _ensure_pool(self) -> Any:
        if self._pool is not None:
            return self._pool
        options = pool_kwargs(self.config.pool)
        self._pool = self._pool_factory(options)
        return self._pool

    def _search_path(self) -> tuple[str, ...]:
        path = [self.config.schema]
        for entry in self.config.search_path:
            if entry not in path:
                path.append(entry)
        return tuple(path)


def _coerce_rows(result: Any) -> list[dict[str, Any]]:
    if result is None:
        return []
    if hasattr(result, "result"):
        data = result.result()
    else:
        data = result
    if isinstance(data, list):
        return [dict(row) for row in data]
    if isinstance(data, dict):
        return [dict(data)]
    if data is None:
        return []
    raise DatabaseError(f"Unexpected query result type: {type(data)!r}")


def pool_kwargs(config: PoolConfig) -> Mapping[str, Any]:
    builtins = msgspec.to_builtins(config)
    options = dict(builtins.pop("options", {}))
    payload: dict[str, Any] = {key: value for key, value in builtins.items() if value is not None}
    if options:
        payload["options"] = options
    return payload


def _default_pool_factory(options: Mapping[str, Any]) -> Any:  # pragma: no cover - exercised in integration
    from psqlpy import ConnectionPool

    return ConnectionPool(**options)


def quote_identifier(identifier: str) -> str:
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


__all__ = [
    "Database",
    "DatabaseConfig",
    "DatabaseConnection",
    "DatabaseError",
    "DatabaseResult",
    "PoolConfig",
    "pool_kwargs",
    "quote_identifier",
]
