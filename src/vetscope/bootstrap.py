"""Assemble the scoped cross-entity snapshot a session starts from.

One fetch is issued per entity kind the principal may read. Fetches run
concurrently and independently: a kind that fails or times out is reported
in the snapshot and never cancels its siblings. Every row that reaches the
snapshot has been checked against the principal's tenant.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence, Union

import msgspec

from .config import BootstrapConfig
from .entities import BOOTSTRAP_ORDER, EAGER_RELATIONS, EntityKind, TenantIdentity
from .exceptions import IsolationBreach
from .filters import Filter, MatchNone, Row
from .observability import Observability
from .scope import DENIED, Denied, ScopeResolver
from .store import Store
from .tenancy import Principal

logger = logging.getLogger(__name__)


class Rows(msgspec.Struct, frozen=True, tag="rows"):
    rows: tuple[Row, ...] = ()


class Failed(msgspec.Struct, frozen=True, tag="failed"):
    reason: str


KindResult = Union[Rows, Denied, Failed]


class Snapshot(msgspec.Struct, frozen=True):
    """Request-scoped result of one bootstrap.

    ``results`` holds the outcome of every requested kind. ``rows`` exposes
    only the kinds that were fetched successfully; denied and failed kinds
    are told apart through :attr:`denied_kinds` and :attr:`failed_kinds`.
    """

    tenant_id: str
    branch_id: str | None
    results: dict[EntityKind, KindResult]

    @property
    def rows(self) -> dict[EntityKind, tuple[Row, ...]]:
        return {kind: result.rows for kind, result in self.results.items() if isinstance(result, Rows)}

    @property
    def failed_kinds(self) -> frozenset[EntityKind]:
        return frozenset(kind for kind, result in self.results.items() if isinstance(result, Failed))

    @property
    def denied_kinds(self) -> frozenset[EntityKind]:
        return frozenset(kind for kind, result in self.results.items() if isinstance(result, Denied))

    @property
    def failures(self) -> dict[EntityKind, str]:
        return {kind: result.reason for kind, result in self.results.items() if isinstance(result, Failed)}

    @property
    def is_complete(self) -> bool:
        return not self.failed_kinds

    @property
    def is_total_failure(self) -> bool:
        allowed = [result for result in self.results.values() if not isinstance(result, Denied)]
        return bool(allowed) and all(isinstance(result, Failed) for result in allowed)

    def get(self, kind: EntityKind) -> tuple[Row, ...] | None:
        result = self.results.get(kind)
        if isinstance(result, Rows):
            return result.rows
        return None

    def to_payload(self) -> dict[str, Any]:
        """Return the portal's bootstrap body.

        Readable kinds appear under their payload key; denied kinds are absent;
        failed kinds are absent too and listed under ``failedKinds``.
        """

        payload: dict[str, Any] = {}
        for kind, result in self.results.items():
            if isinstance(result, Rows):
                payload[kind.value] = [dict(row) for row in result.rows]
        payload["failedKinds"] = [kind.value for kind in self.results if kind in self.failed_kinds]
        payload["currentTenantId"] = self.tenant_id
        payload["currentBranchId"] = self.branch_id
        return payload


class BootstrapAggregator:
    """Resolve, fetch and join every entity kind for one principal."""

    def __init__(
        self,
        store: Store,
        *,
        config: BootstrapConfig | None = None,
        resolver: ScopeResolver | None = None,
        observability: Observability | None = None,
        kinds: Sequence[EntityKind] = BOOTSTRAP_ORDER,
    ) -> None:
        self.store = store
        self.config = config or BootstrapConfig()
        self.resolver = resolver or ScopeResolver(branch_scoped=self.config.branch_scoping)
        self.observability = observability or Observability()
        self.kinds = tuple(kinds)

    async def bootstrap(self, principal: Principal, *, timeout: float | None = None) -> Snapshot:
        """Return the snapshot visible to ``principal``.

        ``timeout`` bounds each per-kind fetch and defaults to the configured
        ``fetch_timeout``. Fetch problems never raise; they are reported per
        kind. Cancelling the call cancels every fetch still in flight.
        """

        context = self.observability.on_bootstrap_start(principal)
        try:
            snapshot = await self._bootstrap(principal, timeout)
        except BaseException as exc:
            self.observability.on_bootstrap_error(context, exc)
            raise
        self.observability.on_bootstrap_success(context, snapshot)
        return snapshot

    async def _bootstrap(self, principal: Principal, timeout: float | None) -> Snapshot:
        if principal.violates_contract:
            self.observability.on_contract_violation(principal)
        effective_timeout = timeout if timeout is not None else self.config.fetch_timeout
        limiter = asyncio.Semaphore(self.config.max_concurrent_fetches)

        results: dict[EntityKind, KindResult] = {}
        tasks: dict[EntityKind, asyncio.Task[KindResult]] = {}
        for kind in self.kinds:
            where = self.resolver.resolve(principal, kind)
            if isinstance(where, Denied):
                results[kind] = DENIED
            elif isinstance(where, MatchNone):
                results[kind] = Rows()
            else:
                tasks[kind] = asyncio.ensure_future(self._load(principal, kind, where, effective_timeout, limiter))

        if tasks:
            try:
                await asyncio.gather(*tasks.values())
            except BaseException:
                pending = [task for task in tasks.values() if not task.done()]
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
                raise
            for kind, task in tasks.items():
                results[kind] = task.result()

        ordered = {kind: results[kind] for kind in self.kinds}
        return Snapshot(tenant_id=principal.tenant_id, branch_id=principal.branch_id, results=ordered)

    async def _load(
        self,
        principal: Principal,
        kind: EntityKind,
        where: Filter,
        timeout: float | None,
        limiter: asyncio.Semaphore,
    ) -> KindResult:
        plan = self.config.plan_for(kind)
        try:
            async with limiter:
                fetch = self.store.find(
                    kind,
                    where,
                    include=EAGER_RELATIONS.get(kind, ()),
                    order_by=plan.order_by,
                    limit=plan.limit_for(principal.is_client),
                )
                fetched = await asyncio.wait_for(fetch, timeout)
            rows = tuple(dict(row) for row in fetched)
            _verify_isolation(principal, kind, rows, self.resolver)
        except asyncio.TimeoutError:
            reason = f"timed out after {timeout}s"
            self.observability.on_fetch_failure(principal, kind, reason)
            return Failed(reason)
        except IsolationBreach as exc:
            self.observability.on_isolation_breach(principal, kind, exc)
            return Failed("isolation breach")
        except Exception as exc:
            logger.debug("bootstrap fetch for %s failed", kind.value, exc_info=exc)
            reason = f"{type(exc).__name__}: {exc}"
            self.observability.on_fetch_failure(principal, kind, reason)
            return Failed(reason)
        if plan.chronological:
            rows = rows[::-1]
        return Rows(rows)


def _verify_isolation(
    principal: Principal,
    kind: EntityKind,
    rows: Sequence[Mapping[str, Any]],
    resolver: ScopeResolver,
) -> None:
    visibility = resolver.visibility(kind)
    field = visibility.field if isinstance(visibility, TenantIdentity) else "tenant_id"
    for row in rows:
        if row.get(field) != principal.tenant_id:
            raise IsolationBreach(kind.value, row.get("id"))


__all__ = ["BootstrapAggregator", "Failed", "KindResult", "Rows", "Snapshot"]
