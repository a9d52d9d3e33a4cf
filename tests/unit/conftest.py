"""Unit test environment helpers."""

import pytest

from pos_dal.client import reset_client


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Keep DAL env settings at their defaults and telemetry off."""
    for name in (
        "POS_DB_PATH",
        "POS_DB_BUSY_TIMEOUT_MS",
        "POS_DB_JOURNAL_MODE",
        "POS_DB_SYNCHRONOUS",
        "POS_DB_FOREIGN_KEYS",
        "POS_DAL_MAX_INCLUDE_DEPTH",
        "POS_DAL_TRACE_QUERIES",
        "POS_DAL_METRICS_ENABLED",
        "POS_DAL_CLASSIFIED_ERROR_TELEMETRY",
        "OTEL_DISABLE_EXPORTER",
        "OTEL_METRICS_EXPORTER",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
        "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_client_singleton():
    """Drop the process-wide client after each test."""
    yield
    reset_client()
