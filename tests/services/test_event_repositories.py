from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.models.status_event import ContributingSource, EventPatch, StatusEvent, StatusType
from app.services.events.errors import ConcurrentUpdateError, EventPersistenceError, IngestionConfigError
from app.services.events.policies import normalized_company_key
from app.services.events.repositories import (
    InMemoryEventRepository,
    SqlEventRepository,
    build_event_repository,
)

NOW = datetime(2024, 4, 1, 12, 0, tzinfo=timezone.utc)


def _source(name: str, reliability: int = 80) -> ContributingSource:
    return ContributingSource(
        name=name, url=f"https://{name.lower()}.example.com/a", reliability=reliability, added_at=NOW
    )


def _event(company_name: str = "Acme Corp", *, start_date: date = date(2024, 3, 1), **overrides) -> StatusEvent:
    payload = {
        "company_name": company_name,
        "status_type": StatusType.LAYOFF,
        "start_date": start_date,
        "description": f"{company_name} cuts staff.",
        "sources": [_source("Reuters", 95)],
        "created_at": NOW,
    }
    payload.update(overrides)
    return StatusEvent(**payload)


@pytest.fixture(params=["memory", "sqlite"])
def repository(request):
    if request.param == "memory":
        yield InMemoryEventRepository()
        return
    repo = SqlEventRepository("sqlite://", auto_create_schema=True)
    try:
        yield repo
    finally:
        repo.dispose()


def test_insert_assigns_identity_and_round_trips(repository):
    stored = repository.insert(_event(employee_count_impact=120, affected_departments=["Sales"]))

    assert stored.id is not None
    assert stored.version == 1
    loaded = repository.get(stored.id)
    assert loaded is not None
    assert loaded.company_name == "Acme Corp"
    assert loaded.employee_count_impact == 120
    assert loaded.affected_departments == ["Sales"]
    assert loaded.sources[0].name == "Reuters"
    assert loaded.created_at == NOW


def test_find_candidates_filters_and_orders_most_recent_first(repository):
    for offset in range(7):
        repository.insert(_event(start_date=date(2024, 3, 1) + timedelta(days=offset)))
    repository.insert(_event(start_date=date(2024, 3, 20), status_type=StatusType.HIRING_FREEZE))
    repository.insert(_event("Globex", start_date=date(2024, 3, 20)))
    repository.insert(_event(start_date=date(2023, 12, 1)))

    candidates = repository.find_candidates("Acme Corp", StatusType.LAYOFF, date(2024, 1, 31), limit=5)

    assert [event.start_date for event in candidates] == [
        date(2024, 3, 1) + timedelta(days=offset) for offset in range(6, 1, -1)
    ]
    assert all(event.status_type is StatusType.LAYOFF for event in candidates)


def test_update_appends_sources_and_bumps_version(repository):
    stored = repository.insert(_event())

    updated = repository.update(
        stored.id,
        EventPatch(append_sources=[_source("TechCrunch"), _source("Reuters")], verified=True, merged_at=NOW),
        expected_version=1,
    )

    assert [source.name for source in updated.sources] == ["Reuters", "TechCrunch"]
    assert updated.verified is True
    assert updated.version == 2
    reloaded = repository.get(stored.id)
    assert reloaded.version == 2
    assert reloaded.source_count == 2
    assert reloaded.last_merged_at == NOW


def test_update_never_clears_verified(repository):
    stored = repository.insert(_event(verified=True))

    updated = repository.update(stored.id, EventPatch(verified=False))

    assert updated.verified is True


def test_stale_version_is_rejected(repository):
    stored = repository.insert(_event())
    repository.update(stored.id, EventPatch(append_sources=[_source("TechCrunch")]), expected_version=1)

    with pytest.raises(ConcurrentUpdateError):
        repository.update(stored.id, EventPatch(append_sources=[_source("Verge")]), expected_version=1)

    assert repository.get(stored.id).source_count == 2


def test_update_missing_event_raises(repository):
    with pytest.raises(EventPersistenceError) as excinfo:
        repository.update(uuid4(), EventPatch())

    assert excinfo.value.code == "404_EVENT_NOT_FOUND"


def test_list_events_filters_by_company_substring_and_type(repository):
    repository.insert(_event("Acme Corp"))
    repository.insert(_event("Acme Robotics", status_type=StatusType.MASS_HIRING))
    repository.insert(_event("Globex"))

    assert {event.company_name for event in repository.list_events(company_name="acme")} == {
        "Acme Corp",
        "Acme Robotics",
    }
    hiring = repository.list_events(status_type=StatusType.MASS_HIRING)
    assert [event.company_name for event in hiring] == ["Acme Robotics"]
    assert len(repository.list_events(limit=2)) == 2


def test_ping_reports_healthy(repository):
    assert repository.ping() is True


def test_normalized_company_key_groups_spelling_variants():
    repository = InMemoryEventRepository(company_key=normalized_company_key)
    repository.insert(_event("Acme Corp"))

    assert len(repository.find_candidates("ACME Inc.", StatusType.LAYOFF, date(2024, 1, 1))) == 1


def test_sql_repository_stores_company_key():
    repository = SqlEventRepository("sqlite://", company_key=normalized_company_key, auto_create_schema=True)
    try:
        repository.insert(_event("Acme Corp"))
        assert len(repository.find_candidates("acme, inc", StatusType.LAYOFF, date(2024, 1, 1))) == 1
    finally:
        repository.dispose()


def test_build_event_repository_defaults_to_memory(monkeypatch):
    from app.config import settings

    monkeypatch.setattr(settings, "database_url", None)

    assert isinstance(build_event_repository(), InMemoryEventRepository)


def test_build_event_repository_rejects_unknown_matching_policy(monkeypatch):
    from app.config import settings

    monkeypatch.setattr(settings, "database_url", None)

    with pytest.raises(IngestionConfigError):
        build_event_repository(company_name_matching="fuzzy")
