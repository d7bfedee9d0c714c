"""Shared test fixtures."""

import mlflow
import pytest


@pytest.fixture(autouse=True)
def _disable_mlflow_tracing():
    """Disable MLflow tracing during tests so nothing is written to mlruns/."""
    mlflow.tracing.disable()
    yield
    mlflow.tracing.enable()


@pytest.fixture(autouse=True)
def _clear_caches():
    """Fresh shared response cache and geocode cache for every test."""
    from townlens.retrieval.cache import clear_cache
    from townlens.retrieval.geocode import clear_geocode_cache

    clear_cache()
    clear_geocode_cache()
    yield
    clear_cache()
    clear_geocode_cache()
