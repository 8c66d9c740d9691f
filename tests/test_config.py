from __future__ import annotations

import pytest

from vetscope.config import AppConfig, BootstrapConfig, FetchPlan, default_fetch_plans, load_config
from vetscope.entities import EntityKind
from vetscope.exceptions import ConfigError


def test_defaults() -> None:
    config = load_config({})
    assert config == AppConfig()
    assert config.database is None
    assert config.bootstrap.fetch_timeout == 10.0
    assert config.bootstrap.max_concurrent_fetches == 4
    assert not config.bootstrap.branch_scoping
    assert config.integrity.tenant_id is None


def test_environment_overrides() -> None:
    config = load_config(
        {
            "VETSCOPE_DATABASE_URL": "postgres://clinic/db",
            "VETSCOPE_FETCH_TIMEOUT": "2.5",
            "VETSCOPE_MAX_CONCURRENT_FETCHES": "8",
            "VETSCOPE_BRANCH_SCOPING": "yes",
            "VETSCOPE_INTEGRITY_TENANT": "t1",
        }
    )
    assert config.database is not None
    assert config.database.pool.dsn == "postgres://clinic/db"
    assert config.bootstrap.fetch_timeout == 2.5
    assert config.bootstrap.max_concurrent_fetches == 8
    assert config.bootstrap.branch_scoping
    assert config.integrity.tenant_id == "t1"


@pytest.mark.parametrize("raw", ["none", "off", ""])
def test_fetch_timeout_can_be_disabled(raw: str) -> None:
    assert load_config({"VETSCOPE_FETCH_TIMEOUT": raw}).bootstrap.fetch_timeout is None


@pytest.mark.parametrize(
    "environ",
    [
        {"VETSCOPE_FETCH_TIMEOUT": "soon"},
        {"VETSCOPE_FETCH_TIMEOUT": "-1"},
        {"VETSCOPE_MAX_CONCURRENT_FETCHES": "many"},
        {"VETSCOPE_MAX_CONCURRENT_FETCHES": "0"},
        {"VETSCOPE_BRANCH_SCOPING": "maybe"},
    ],
)
def test_invalid_values_raise_config_error(environ: dict[str, str]) -> None:
    with pytest.raises(ConfigError):
        load_config(environ)


def test_default_fetch_plans() -> None:
    plans = default_fetch_plans()
    assert plans[EntityKind.LAB_REQUEST].limit == 200
    assert plans[EntityKind.CHAT_MESSAGE] == FetchPlan(order_by=("timestamp desc",), limit=250, chronological=True)
    assert plans[EntityKind.AUDIT_LOG].order_by == ("timestamp desc",)
    assert EntityKind.CLIENT not in plans
    assert BootstrapConfig().plan_for(EntityKind.CLIENT) == FetchPlan()


def test_plan_limit_for_clients() -> None:
    capped = FetchPlan(limit=10)
    uncapped = FetchPlan(limit=10, limit_clients=False)
    assert capped.limit_for(is_client=True) == 10
    assert uncapped.limit_for(is_client=True) is None
    assert uncapped.limit_for(is_client=False) == 10
