"""Command line utilities for vetscope."""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import sys
from dataclasses import dataclass
from typing import Sequence

from .bootstrap import BootstrapAggregator
from .config import AppConfig, load_config
from .database import Database
from .entities import EntityKind
from .exceptions import PrincipalError
from .integrity import StockIntegrityChecker
from .observability import Observability
from .serialization import json_encode
from .sql import SqlStore
from .store import Store
from .tenancy import Principal, Role

PROJECT_NAME = "vetscope"


@dataclass(slots=True)
class CLIEnvironment:
    """All dependencies required to execute CLI operations."""

    store: Store
    config: AppConfig
    database: Database | None = None


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, stream=sys.stderr)
    return args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROJECT_NAME, description="Tenant scoping and stock integrity tools")
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check-stock", help="Report items whose stock total disagrees with their batches")
    check.add_argument("--module", default="vetscope_env", help="Module providing the store or database")
    check.add_argument("--tenant", default=None, help="Restrict the scan to one tenant")
    check.add_argument("--json", action="store_true", help="Print findings as JSON")
    check.set_defaults(func=_cmd_check_stock)

    boot = sub.add_parser("bootstrap", help="Print the bootstrap snapshot a principal would receive")
    boot.add_argument("--module", default="vetscope_env", help="Module providing the store or database")
    boot.add_argument("--tenant", required=True, help="Tenant id of the principal")
    boot.add_argument("--role", required=True, choices=[role.value for role in Role])
    boot.add_argument("--client-id", default=None, help="Client binding for PET_OWNER principals")
    boot.add_argument("--branch-id", default=None, help="Branch the principal works in")
    boot.add_argument("--timeout", type=float, default=None, help="Per-kind fetch timeout in seconds")
    boot.set_defaults(func=_cmd_bootstrap)

    return parser


def _cmd_check_stock(args: argparse.Namespace) -> int:
    env = _load_environment(args.module)
    tenant = args.tenant or env.config.integrity.tenant_id
    checker = StockIntegrityChecker(tenant_id=tenant, observability=Observability(env.config.observability))
    report = asyncio.run(_run(env, checker.collect(env.store)))
    if args.json:
        payload = {"items_checked": report.items_checked, "findings": report.findings, "unreadable": report.unreadable}
        print(json_encode(payload).decode("utf-8"))
    else:
        for finding in report.findings:
            if finding.batch_sum is None:
                detail = f"total_stock={finding.total_stock}"
            else:
                detail = f"total_stock={finding.total_stock} batch_sum={finding.batch_sum}"
            print(f"{finding.severity.value.upper()} {finding.kind.value} [{finding.item_name}] {detail}")
        for entry in report.unreadable:
            print(f"CRITICAL unreadable [{entry.item_id}] {entry.reason}")
        summary = f"checked {report.items_checked} items, {len(report.findings)} findings"
        if report.unreadable:
            summary += f", {len(report.unreadable)} unreadable"
        print(summary)
    return 0 if report.clean else 1


def _cmd_bootstrap(args: argparse.Namespace) -> int:
    env = _load_environment(args.module)
    try:
        principal = Principal(
            tenant_id=args.tenant,
            role=Role(args.role),
            client_id=args.client_id,
            branch_id=args.branch_id,
        )
    except PrincipalError as exc:
        raise SystemExit(str(exc)) from exc
    aggregator = BootstrapAggregator(
        env.store,
        config=env.config.bootstrap,
        observability=Observability(env.config.observability),
    )
    snapshot = asyncio.run(_run(env, aggregator.bootstrap(principal, timeout=args.timeout)))
    print(json_encode(snapshot.to_payload()).decode("utf-8"))
    for kind in EntityKind:
        if kind in snapshot.failed_kinds:
            print(f"failed {kind.value}: {snapshot.failures[kind]}", file=sys.stderr)
    return 0 if snapshot.is_complete else 1


async def _run(env: CLIEnvironment, operation):  # type: ignore[no-untyped-def]
    try:
        return await operation
    finally:
        if env.database is not None:
            await env.database.shutdown()


def _load_environment(module_name: str) -> CLIEnvironment:
    module = importlib.import_module(module_name)

    config_factory = getattr(module, "get_config", None)
    if callable(config_factory):
        config = config_factory()
    else:
        config = getattr(module, "CONFIG", None) or load_config()

    store = None
    store_factory = getattr(module, "get_store", None)
    if callable(store_factory):
        store = store_factory()
    elif hasattr(module, "STORE"):
        store = getattr(module, "STORE")
    if store is not None:
        return CLIEnvironment(store=store, config=config)

    database = None
    database_factory = getattr(module, "get_database", None)
    if callable(database_factory):
        database = database_factory()
    elif hasattr(module, "DATABASE"):
        database = getattr(module, "DATABASE")
    elif config.database is not None:
        database = Database(config.database)
    if database is None:
        raise SystemExit(f"Module {module_name!r} must define get_store(), STORE, get_database() or DATABASE")
    if not isinstance(database, Database):
        raise SystemExit(f"Module {module_name!r} did not return a Database instance")
    return CLIEnvironment(store=SqlStore(database), config=config, database=database)


__all__ = ["main"]
