"""Application configuration objects."""

from __future__ import annotations

import os
from typing import Mapping

import msgspec

from .database import DatabaseConfig, PoolConfig
from .entities import EntityKind
from .exceptions import ConfigError
from .observability import ObservabilityConfig


class FetchPlan(msgspec.Struct, frozen=True):
    """Ordering and size policy for one entity kind's bootstrap fetch.

    ``chronological`` reverses the fetched rows, so a plan can take the newest
    rows with a descending order and still hand them out oldest first.
    ``limit_clients`` set to ``False`` exempts client principals from
    ``limit``; their rows are already narrowed to what they own.
    """

    order_by: tuple[str, ...] = ()
    limit: int | None = None
    chronological: bool = False
    limit_clients: bool = True

    def limit_for(self, is_client: bool) -> int | None:
        if is_client and not self.limit_clients:
            return None
        return self.limit


def default_fetch_plans() -> dict[EntityKind, FetchPlan]:
    return {
        EntityKind.INVOICE: FetchPlan(limit=500),
        EntityKind.SALE: FetchPlan(limit=500),
        EntityKind.APPOINTMENT: FetchPlan(limit=1000),
        EntityKind.EXPENSE: FetchPlan(limit=500),
        EntityKind.AUDIT_LOG: FetchPlan(order_by=("timestamp desc",), limit=100),
        EntityKind.CHAT_MESSAGE: FetchPlan(order_by=("timestamp desc",), limit=250, chronological=True),
        EntityKind.CONSULTATION: FetchPlan(limit=500),
        EntityKind.LAB_REQUEST: FetchPlan(limit=200, limit_clients=False),
    }


_NO_PLAN = FetchPlan()


class BootstrapConfig(msgspec.Struct, frozen=True):
    """Typed configuration for :class:`~vetscope.bootstrap.BootstrapAggregator`."""

    fetch_timeout: float | None = 10.0
    max_concurrent_fetches: int = 4
    branch_scoping: bool = False
    plans: dict[EntityKind, FetchPlan] = msgspec.field(default_factory=default_fetch_plans)

    def __post_init__(self) -> None:
        if self.max_concurrent_fetches < 1:
            raise ConfigError("max_concurrent_fetches must be at least 1")
        if self.fetch_timeout is not None and self.fetch_timeout <= 0:
            raise ConfigError("fetch_timeout must be positive")

    def plan_for(self, kind: EntityKind) -> FetchPlan:
        return self.plans.get(kind, _NO_PLAN)


class IntegrityConfig(msgspec.Struct, frozen=True):
    """Configuration for the stock integrity job."""

    tenant_id: str | None = None


class AppConfig(msgspec.Struct, frozen=True):
    """Top-level configuration for a vetscope deployment."""

    database: DatabaseConfig | None = None
    bootstrap: BootstrapConfig = BootstrapConfig()
    integrity: IntegrityConfig = IntegrityConfig()
    observability: ObservabilityConfig = ObservabilityConfig()


_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _flag(raw: str, name: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean flag, got {raw!r}")


def load_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Build an :class:`AppConfig` from ``VETSCOPE_*`` environment variables."""

    env = os.environ if environ is None else environ

    database = None
    dsn = env.get("VETSCOPE_DATABASE_URL")
    if dsn:
        database = DatabaseConfig(pool=PoolConfig(dsn=dsn))

    bootstrap_fields: dict[str, object] = {}
    raw_timeout = env.get("VETSCOPE_FETCH_TIMEOUT")
    if raw_timeout is not None:
        if raw_timeout.strip().lower() in {"", "none", "off"}:
            bootstrap_fields["fetch_timeout"] = None
        else:
            try:
                bootstrap_fields["fetch_timeout"] = float(raw_timeout)
            except ValueError as exc:
                raise ConfigError(f"VETSCOPE_FETCH_TIMEOUT must be a number, got {raw_timeout!r}") from exc
    raw_concurrency = env.get("VETSCOPE_MAX_CONCURRENT_FETCHES")
    if raw_concurrency is not None:
        try:
            bootstrap_fields["max_concurrent_fetches"] = int(raw_concurrency)
        except ValueError as exc:
            raise ConfigError(
                f"VETSCOPE_MAX_CONCURRENT_FETCHES must be an integer, got {raw_concurrency!r}"
            ) from exc
    raw_branch = env.get("VETSCOPE_BRANCH_SCOPING")
    if raw_branch is not None:
        bootstrap_fields["branch_scoping"] = _flag(raw_branch, "VETSCOPE_BRANCH_SCOPING")

    tenant = env.get("VETSCOPE_INTEGRITY_TENANT") or None

    return AppConfig(
        database=database,
        bootstrap=BootstrapConfig(**bootstrap_fields),  # type: ignore[arg-type]
        integrity=IntegrityConfig(tenant_id=tenant),
    )


__all__ = [
    "AppConfig",
    "BootstrapConfig",
    "FetchPlan",
    "IntegrityConfig",
    "default_fetch_plans",
    "load_config",
]
