"""Shared observability helpers."""

from pos_common.observability.context import operation_id_var
from pos_common.observability.metrics import dal_metrics, is_metrics_enabled

__all__ = ["dal_metrics", "is_metrics_enabled", "operation_id_var"]
