import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client():
    """Create test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def stub_metrics(monkeypatch):
    """Capture metrics emitted by the pipeline modules."""
    from app.services.events import extractor, merge, repositories
    from pipelines.ingestion import run_ingestion
    from tests.helpers.metrics_stub import StubMetrics

    stub = StubMetrics()
    for module in (extractor, merge, repositories, run_ingestion):
        monkeypatch.setattr(module, "metrics", stub)
    return stub
