from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import uuid4

from app.main import app
from app.models.status_event import ContributingSource, StatusEvent, StatusType
from app.services.events.errors import EventPersistenceError
from app.services.events.repositories import InMemoryEventRepository, get_event_repository

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)


def _source(name: str, reliability: int) -> ContributingSource:
    return ContributingSource(name=name, url=f"https://{name.lower()}.example.com/a", reliability=reliability)


def _seed() -> tuple[InMemoryEventRepository, StatusEvent]:
    repository = InMemoryEventRepository()
    acme = repository.insert(
        StatusEvent(
            company_name="Acme Corp",
            status_type=StatusType.LAYOFF,
            start_date=date(2024, 3, 1),
            description="Acme Corp cuts 400 roles.",
            verified=True,
            sources=[_source("Bloomberg", 95), _source("Reuters", 95)],
            created_at=NOW,
        )
    )
    repository.insert(
        StatusEvent(
            company_name="Globex",
            status_type=StatusType.HIRING_FREEZE,
            start_date=date(2024, 3, 5),
            description="Globex pauses hiring.",
            sources=[_source("LinkedIn", 70)],
            created_at=NOW,
        )
    )
    return repository, acme


def test_list_events_includes_confidence(client):
    repository, _ = _seed()
    app.dependency_overrides[get_event_repository] = lambda: repository

    response = client.get("/api/events")

    assert response.status_code == 200
    body = response.json()
    assert [item["company_name"] for item in body] == ["Globex", "Acme Corp"]
    acme = body[1]
    assert acme["confidence_score"] == 100
    assert acme["confidence_tier"] == "very_high"
    assert body[0]["confidence_score"] == 25
    assert body[0]["confidence_tier"] == "low"


def test_list_events_filters(client):
    repository, _ = _seed()
    app.dependency_overrides[get_event_repository] = lambda: repository

    by_company = client.get("/api/events", params={"company": "acme"})
    by_type = client.get("/api/events", params={"status_type": "hiring_freeze"})

    assert [item["company_name"] for item in by_company.json()] == ["Acme Corp"]
    assert [item["company_name"] for item in by_type.json()] == ["Globex"]


def test_list_events_rejects_unknown_status_type(client):
    repository, _ = _seed()
    app.dependency_overrides[get_event_repository] = lambda: repository

    assert client.get("/api/events", params={"status_type": "acquisition"}).status_code == 422


def test_get_event_by_id(client):
    repository, acme = _seed()
    app.dependency_overrides[get_event_repository] = lambda: repository

    response = client.get(f"/api/events/{acme.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == str(acme.id)
    assert len(body["sources"]) == 2
    assert body["version"] == 1


def test_get_missing_event_returns_404(client):
    repository, _ = _seed()
    app.dependency_overrides[get_event_repository] = lambda: repository

    assert client.get(f"/api/events/{uuid4()}").status_code == 404


class _UnavailableRepository(InMemoryEventRepository):
    def list_events(self, **kwargs):
        raise EventPersistenceError("database down", code="500_INTERNAL")

    def ping(self) -> bool:
        return False


def test_storage_failure_maps_to_500(client):
    app.dependency_overrides[get_event_repository] = lambda: _UnavailableRepository()

    assert client.get("/api/events").status_code == 500


def test_readiness_reflects_storage(client):
    app.dependency_overrides[get_event_repository] = lambda: InMemoryEventRepository()
    assert client.get("/health/ready").status_code == 200

    app.dependency_overrides[get_event_repository] = lambda: _UnavailableRepository()
    assert client.get("/health/ready").status_code == 503


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
