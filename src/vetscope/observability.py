"""Observability integration for scope resolution and integrity scans."""

from __future__ import annotations

import json
import logging
import time
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any, Mapping

import msgspec

if TYPE_CHECKING:
    from .bootstrap import Snapshot
    from .entities import EntityKind
    from .integrity import IntegrityFinding, IntegrityReport, UnreadableItem
    from .tenancy import Principal


class BootstrapObservabilityConfig(msgspec.Struct, frozen=True):
    """Bootstrap metrics and tracing configuration."""

    span_name: str = "vetscope.bootstrap"
    datadog_metric_timing: str = "vetscope.bootstrap.duration"
    datadog_metric_failure: str = "vetscope.bootstrap.fetch_failures"


class IntegrityObservabilityConfig(msgspec.Struct, frozen=True):
    """Stock integrity metrics configuration."""

    datadog_metric_findings: str = "vetscope.integrity.findings"
    datadog_metric_items: str = "vetscope.integrity.items_checked"


class ObservabilityConfig(msgspec.Struct, frozen=True):
    """Top-level observability configuration."""

    enabled: bool = True
    opentelemetry_enabled: bool = True
    opentelemetry_tracer: str = "vetscope"
    sentry_enabled: bool = True
    sentry_capture_exceptions: bool = True
    datadog_enabled: bool = True
    datadog_tags: tuple[tuple[str, str], ...] = ()
    bootstrap: BootstrapObservabilityConfig = BootstrapObservabilityConfig()
    integrity: IntegrityObservabilityConfig = IntegrityObservabilityConfig()


class _ObservationContext:
    __slots__ = ("datadog_tags", "span", "stack", "start")

    def __init__(self, *, start: float, stack: ExitStack, span: Any | None, datadog_tags: tuple[str, ...]) -> None:
        self.start = start
        self.stack = stack
        self.span = span
        self.datadog_tags = datadog_tags

    def close(self, error: BaseException | None = None) -> None:
        if error is None:
            self.stack.__exit__(None, None, None)
        else:
            self.stack.__exit__(type(error), error, error.__traceback__)


class Observability:
    """Coordinate structured logging, tracing, error tracking, and metrics."""

    def __init__(self, config: ObservabilityConfig | None = None, *, logger: logging.Logger | None = None) -> None:
        self.config = config or ObservabilityConfig()
        self._tracer = None
        self._internal_span_kind = None
        self._status_cls = None
        self._status_ok = None
        self._status_error = None
        self._sentry_hub = None
        self._statsd = None
        self._logger = logger or logging.getLogger("vetscope.observability")
        self._base_datadog_tags = tuple(f"{key}:{value}" for key, value in self.config.datadog_tags)
        if self.config.enabled:
            self._prepare_opentelemetry()
            self._prepare_sentry()
            self._prepare_datadog()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _prepare_opentelemetry(self) -> None:
        if not self.config.opentelemetry_enabled:
            return
        try:
            from opentelemetry import trace  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._tracer = trace.get_tracer(self.config.opentelemetry_tracer)
        span_kind = getattr(trace, "SpanKind", None)
        self._internal_span_kind = getattr(span_kind, "INTERNAL", None) if span_kind else None
        status_cls = getattr(trace, "Status", None)
        status_code = getattr(trace, "StatusCode", None)
        if status_cls is not None and status_code is not None:
            self._status_cls = status_cls
            self._status_ok = getattr(status_code, "OK", None)
            self._status_error = getattr(status_code, "ERROR", None)

    def _prepare_sentry(self) -> None:
        if not self.config.sentry_enabled:
            return
        try:
            import sentry_sdk  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._sentry_hub = sentry_sdk.Hub.current

    def _prepare_datadog(self) -> None:
        if not self.config.datadog_enabled:
            return
        try:
            from datadog import statsd  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._statsd = statsd

    def _status(self, code: Any, description: str | None = None) -> Any | None:
        if self._status_cls is None or code is None:
            return None
        if description is None:
            return self._status_cls(code)
        return self._status_cls(code, description=description)

    def _log(self, level: int, event: str, fields: Mapping[str, Any]) -> None:
        if not self.config.enabled:
            return
        payload: dict[str, Any] = {"event": event}
        for key, value in fields.items():
            if value is not None:
                payload[key] = value
        self._logger.log(level, json.dumps(payload, separators=(",", ":"), default=str))

    def _increment(self, metric: str, tags: list[str]) -> None:
        if self._statsd is not None:
            self._statsd.increment(metric, tags=[*self._base_datadog_tags, *tags])

    def _capture_exception(self, error: BaseException) -> None:
        if self._sentry_hub is not None and self.config.sentry_capture_exceptions:
            self._sentry_hub.capture_exception(error)

    def on_bootstrap_start(self, principal: "Principal") -> _ObservationContext | None:
        if not self.config.enabled:
            return None
        stack = ExitStack()
        span = None
        if self._tracer is not None:
            span = stack.enter_context(
                self._tracer.start_as_current_span(self.config.bootstrap.span_name, kind=self._internal_span_kind)
            )
            span.set_attribute("vetscope.tenant", principal.tenant_id)
            span.set_attribute("vetscope.role", principal.role.value)
        tags = [*self._base_datadog_tags, f"tenant:{principal.tenant_id}", f"role:{principal.role.value}"]
        return _ObservationContext(start=time.perf_counter(), stack=stack, span=span, datadog_tags=tuple(tags))

    def on_contract_violation(self, principal: "Principal") -> None:
        self._log(
            logging.WARNING,
            "principal.contract_violation",
            {
                "principal": principal.key(),
                "tenant": principal.tenant_id,
                "role": principal.role.value,
                "user": principal.user_id,
            },
        )

    def on_fetch_failure(self, principal: "Principal", kind: "EntityKind", reason: str) -> None:
        self._log(
            logging.WARNING,
            "bootstrap.fetch_failed",
            {
                "principal": principal.key(),
                "tenant": principal.tenant_id,
                "role": principal.role.value,
                "kind": kind.value,
                "reason": reason,
            },
        )
        self._increment(
            self.config.bootstrap.datadog_metric_failure,
            [f"tenant:{principal.tenant_id}", f"kind:{kind.value}"],
        )

    def on_isolation_breach(self, principal: "Principal", kind: "EntityKind", error: BaseException) -> None:
        self._log(
            logging.ERROR,
            "bootstrap.isolation_breach",
            {"tenant": principal.tenant_id, "kind": kind.value, "detail": str(error)},
        )
        self._capture_exception(error)

    def on_bootstrap_success(self, context: _ObservationContext | None, snapshot: "Snapshot") -> None:
        if context is None:
            return
        failed = sorted(kind.value for kind in snapshot.failed_kinds)
        if self._statsd is not None:
            duration_ms = (time.perf_counter() - context.start) * 1000.0
            tags = [*context.datadog_tags, f"complete:{str(snapshot.is_complete).lower()}"]
            self._statsd.timing(self.config.bootstrap.datadog_metric_timing, duration_ms, tags=tags)
        if context.span is not None:
            context.span.set_attribute("vetscope.kinds.present", len(snapshot.rows))
            context.span.set_attribute("vetscope.kinds.denied", len(snapshot.denied_kinds))
            context.span.set_attribute("vetscope.kinds.failed", ",".join(failed))
            status = self._status(self._status_ok)
            if status is not None:
                context.span.set_status(status)
        self._log(
            logging.INFO,
            "bootstrap.complete",
            {
                "tenant": snapshot.tenant_id,
                "kinds": len(snapshot.rows),
                "denied": len(snapshot.denied_kinds),
                "failed": failed or None,
            },
        )
        context.close()

    def on_bootstrap_error(self, context: _ObservationContext | None, error: BaseException) -> None:
        if context is None:
            if isinstance(error, Exception):
                self._capture_exception(error)
            return
        if context.span is not None:
            if hasattr(context.span, "record_exception"):
                context.span.record_exception(error)
            status = self._status(self._status_error, description=str(error) or type(error).__name__)
            if status is not None:
                context.span.set_status(status)
        if isinstance(error, Exception):
            self._capture_exception(error)
        context.close(error)

    def on_integrity_finding(self, finding: "IntegrityFinding") -> None:
        level = logging.ERROR if finding.is_critical else logging.WARNING
        self._log(
            level,
            f"integrity.{finding.kind.value}",
            {
                "tenant": finding.tenant_id,
                "item": finding.item_id,
                "name": finding.item_name,
                "total_stock": finding.total_stock,
                "batch_sum": finding.batch_sum,
                "severity": finding.severity.value,
            },
        )
        self._increment(
            self.config.integrity.datadog_metric_findings,
            [f"tenant:{finding.tenant_id}", f"kind:{finding.kind.value}", f"severity:{finding.severity.value}"],
        )

    def on_integrity_unreadable(self, item: "UnreadableItem") -> None:
        self._log(
            logging.ERROR,
            "integrity.unreadable",
            {"tenant": item.tenant_id, "item": item.item_id, "reason": item.reason},
        )
        self._increment(
            self.config.integrity.datadog_metric_findings,
            [f"tenant:{item.tenant_id}", "kind:unreadable", "severity:critical"],
        )

    def on_integrity_complete(self, report: "IntegrityReport") -> None:
        if self._statsd is not None:
            self._statsd.gauge(
                self.config.integrity.datadog_metric_items,
                report.items_checked,
                tags=list(self._base_datadog_tags),
            )
        self._log(
            logging.INFO,
            "integrity.complete",
            {
                "items": report.items_checked,
                "mismatches": report.mismatches,
                "negative": report.negative_stock,
                "unreadable": len(report.unreadable) or None,
            },
        )


__all__ = [
    "BootstrapObservabilityConfig",
    "IntegrityObservabilityConfig",
    "Observability",
    "ObservabilityConfig",
]
