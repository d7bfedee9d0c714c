"""Thin MLflow wrapper for tracing and run-level metrics.

Span tracing goes straight through ``mlflow.trace``/``mlflow.start_span``
(disable with ``mlflow.tracing.disable()``). Run-level logging (params,
metrics, tags) only happens when ``settings.mlflow_enabled`` is set, so a
plain CLI invocation never creates an ``mlruns/`` store.

Usage:

    from townlens.observability.tracing import trace, start_span, start_run

    @trace(name="fetch", span_type="RETRIEVER")
    async def fetch(): ...

    with start_run(run_name="report"):
        log_params({"preset": "childcare"})
"""

import logging
from contextlib import contextmanager

import mlflow

from townlens.config import settings

logger = logging.getLogger(__name__)

_configured = False


# ---------------------------------------------------------------------------
# Spans
# ---------------------------------------------------------------------------

def trace(name: str | None = None, **kwargs):
    """Decorator: wrap a (sync or async) function in an MLflow trace span."""
    return mlflow.trace(name=name, **kwargs) if name else mlflow.trace(**kwargs)


@contextmanager
def start_span(name: str = "span", **kwargs):
    """Context manager yielding an MLflow span."""
    with mlflow.start_span(name=name, **kwargs) as span:
        yield span


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

def _configure() -> None:
    global _configured
    if _configured:
        return
    mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
    mlflow.set_experiment(settings.mlflow_experiment_name)
    _configured = True


@contextmanager
def start_run(**kwargs):
    """MLflow run when run logging is enabled, otherwise yields None."""
    if not settings.mlflow_enabled:
        yield None
        return
    _configure()
    with mlflow.start_run(**kwargs) as run:
        yield run


def log_params(params: dict) -> None:
    if not settings.mlflow_enabled or mlflow.active_run() is None:
        return
    try:
        mlflow.log_params(params)
    except Exception:
        logger.debug("MLflow log_params failed", exc_info=True)


def log_metrics(metrics: dict, step: int | None = None) -> None:
    if not settings.mlflow_enabled or mlflow.active_run() is None:
        return
    try:
        mlflow.log_metrics(metrics, step=step)
    except Exception:
        logger.debug("MLflow log_metrics failed", exc_info=True)


def set_tag(key: str, value: str) -> None:
    if not settings.mlflow_enabled or mlflow.active_run() is None:
        return
    try:
        mlflow.set_tag(key, value)
    except Exception:
        logger.debug("MLflow set_tag failed", exc_info=True)
