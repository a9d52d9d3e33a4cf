import hashlib
import time
from typing import Awaitable, Optional

from pos_common.observability.context import operation_id_var
from pos_common.observability.metrics import dal_metrics, is_metrics_enabled


def trace_enabled() -> bool:
    """Return True when DAL query tracing is enabled or OTEL exporter defaults apply."""
    return is_metrics_enabled("POS_DAL_TRACE_QUERIES")


def _hash_sql(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


def _statement_verb(sql: Optional[str]) -> str:
    if not sql:
        return "UNKNOWN"
    parts = sql.strip().split(maxsplit=1)
    return parts[0].upper() if parts else "UNKNOWN"


async def trace_query_operation(
    name: str,
    operation_kind: str,
    sql: Optional[str],
    operation: Awaitable,
):
    """Await a store operation, wrapped in an OTEL span when tracing is enabled."""
    started = time.perf_counter()
    status = "ok"
    try:
        if not trace_enabled():
            return await operation

        from opentelemetry import trace

        tracer = trace.get_tracer("pos_dal")
        with tracer.start_as_current_span(name) as span:
            operation_id = operation_id_var.get()
            if operation_id:
                span.set_attribute("operation_id", operation_id)
            span.set_attribute("db.system", "sqlite")
            span.set_attribute("db.operation", operation_kind)
            if sql:
                span.set_attribute("db.statement_hash", _hash_sql(sql))
            try:
                result = await operation
                span.set_attribute("db.status", "ok")
                return result
            except Exception:
                span.set_attribute("db.status", "error")
                raise
    except Exception:
        status = "error"
        raise
    finally:
        dal_metrics.record_statement(
            operation_kind,
            _statement_verb(sql),
            status,
            (time.perf_counter() - started) * 1000.0,
        )
