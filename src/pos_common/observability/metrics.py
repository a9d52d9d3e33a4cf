"""Optional low-cardinality metrics for the store."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from opentelemetry import metrics

from pos_common.config.env import get_env_bool

logger = logging.getLogger(__name__)


def is_otel_exporter_configured() -> bool:
    """Return True when OTEL exporter environment indicates external export is configured."""
    if get_env_bool("OTEL_DISABLE_EXPORTER", False):
        return False

    endpoint = (os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip()
    metrics_endpoint = (os.getenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT") or "").strip()
    metrics_exporter = (os.getenv("OTEL_METRICS_EXPORTER") or "").strip().lower()
    if metrics_exporter == "none":
        return False

    return bool(endpoint or metrics_endpoint)


def is_metrics_enabled(enabled_env_var: str) -> bool:
    """Resolve enablement with explicit override support.

    An explicit value in ``enabled_env_var`` always wins; otherwise telemetry is
    enabled only when an OTLP exporter endpoint is configured.
    """
    raw = os.getenv(enabled_env_var)
    if raw is not None:
        try:
            return get_env_bool(enabled_env_var, False) is True
        except ValueError:
            logger.warning("Invalid %s value '%s'; telemetry disabled.", enabled_env_var, raw)
            return False
    return is_otel_exporter_configured()


def _labels(attributes: Optional[Dict[str, Any]]) -> Dict[str, str]:
    # Statement labels are short enums; OTEL attribute values are kept as strings.
    return {key: str(value) for key, value in (attributes or {}).items() if value is not None}


@dataclass
class OptionalMetrics:
    """Lazily created OTEL instruments, emitted only when enabled by env."""

    meter_name: str
    enabled_env_var: str
    _meter: Any = None
    _instruments: Dict[Tuple[str, str], Any] = field(default_factory=dict)

    def _enabled(self) -> bool:
        return is_metrics_enabled(self.enabled_env_var)

    def _instrument(self, kind: str, name: str, description: str, unit: str) -> Any:
        instrument = self._instruments.get((kind, name))
        if instrument is None:
            if self._meter is None:
                self._meter = metrics.get_meter(self.meter_name)
            create = getattr(self._meter, f"create_{kind}")
            instrument = create(name=name, description=description, unit=unit)
            self._instruments[(kind, name)] = instrument
        return instrument

    def add_counter(
        self,
        name: str,
        value: int = 1,
        *,
        description: str = "",
        unit: str = "1",
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Add to a monotonic counter when metrics are enabled."""
        if not self._enabled():
            return
        try:
            counter = self._instrument("counter", name, description, unit)
            counter.add(int(value), _labels(attributes))
        except Exception as exc:
            logger.debug("Counter metric emission failed for %s: %s", name, exc)

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        description: str = "",
        unit: str = "1",
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a histogram datapoint when metrics are enabled."""
        if not self._enabled():
            return
        try:
            histogram = self._instrument("histogram", name, description, unit)
            histogram.record(float(value), _labels(attributes))
        except Exception as exc:
            logger.debug("Histogram metric emission failed for %s: %s", name, exc)


@dataclass
class StoreMetrics(OptionalMetrics):
    """Statement count and latency for the embedded store."""

    def record_statement(
        self, operation: str, verb: str, status: str, duration_ms: float
    ) -> None:
        attributes = {"operation": operation, "verb": verb, "status": status}
        self.add_counter(
            "pos_dal.statements",
            description="Statements issued to the embedded store",
            attributes=attributes,
        )
        self.record_histogram(
            "pos_dal.statement.duration_ms",
            duration_ms,
            description="Store statement latency",
            unit="ms",
            attributes=attributes,
        )


dal_metrics = StoreMetrics(
    meter_name="pos-dal",
    enabled_env_var="POS_DAL_METRICS_ENABLED",
)
