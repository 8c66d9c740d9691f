"""Vetscope tenant-scoped data access for multi-clinic veterinary portals."""

from .bootstrap import BootstrapAggregator, Failed, Rows, Snapshot
from .config import AppConfig, BootstrapConfig, FetchPlan, IntegrityConfig, load_config
from .database import Database, DatabaseConfig, PoolConfig
from .entities import EntityKind, OwnerScoped, SelfAndOthers, StaffOnly, TenantIdentity, TenantWide, visibility_for
from .exceptions import ConfigError, IsolationBreach, PrincipalError, StoreError, VetScopeError
from .filters import AllOf, AnyOf, Eq, Filter, MatchNone, NotEq, Related, Unscoped, matches
from .integrity import IntegrityFinding, IntegrityReport, StockIntegrityChecker
from .observability import Observability, ObservabilityConfig
from .scope import DENIED, Denied, ScopeResolver, resolve
from .sql import SqlStore
from .store import MemoryStore, Store
from .tenancy import Principal, Role

__all__ = [
    "DENIED",
    "AllOf",
    "AnyOf",
    "AppConfig",
    "BootstrapAggregator",
    "BootstrapConfig",
    "ConfigError",
    "Database",
    "DatabaseConfig",
    "Denied",
    "EntityKind",
    "Eq",
    "Failed",
    "FetchPlan",
    "Filter",
    "IntegrityConfig",
    "IntegrityFinding",
    "IntegrityReport",
    "IsolationBreach",
    "MatchNone",
    "MemoryStore",
    "NotEq",
    "Observability",
    "ObservabilityConfig",
    "OwnerScoped",
    "PoolConfig",
    "Principal",
    "PrincipalError",
    "Related",
    "Role",
    "Rows",
    "ScopeResolver",
    "SelfAndOthers",
    "Snapshot",
    "SqlStore",
    "StaffOnly",
    "StockIntegrityChecker",
    "Store",
    "StoreError",
    "TenantIdentity",
    "TenantWide",
    "Unscoped",
    "VetScopeError",
    "load_config",
    "matches",
    "resolve",
    "visibility_for",
]
