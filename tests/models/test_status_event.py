from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from app.models.status_event import (
    ContributingSource,
    EventPatch,
    Severity,
    StatusEvent,
    StatusEventDraft,
    StatusType,
    apply_patch,
)
from tests.helpers.fakes import make_source

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)


def _event(**overrides) -> StatusEvent:
    payload = {
        "company_name": "Acme Corp",
        "status_type": StatusType.LAYOFF,
        "start_date": date(2024, 3, 1),
        "description": "Acme Corp cuts staff.",
        "sources": [ContributingSource(name="Reuters", url="https://reuters.example.com/a", reliability=95)],
        "created_at": NOW,
    }
    payload.update(overrides)
    return StatusEvent(**payload)


def test_draft_normalizes_llm_output():
    draft = StatusEventDraft(
        company_name="  Acme Corp ",
        status_type="Hiring-Freeze",
        severity="",
        affected_departments=None,
        start_date="2024-03-01",
        description=" Freeze announced. ",
        source_url="  ",
    )

    assert draft.company_name == "Acme Corp"
    assert draft.status_type is StatusType.HIRING_FREEZE
    assert draft.severity is Severity.MEDIUM
    assert draft.affected_departments == []
    assert draft.source_url is None


def test_draft_rejects_end_before_start():
    with pytest.raises(ValidationError):
        StatusEventDraft(
            company_name="Acme",
            status_type="layoff",
            start_date=date(2024, 3, 10),
            end_date=date(2024, 3, 1),
            description="x",
        )


def test_draft_rejects_unknown_status_type():
    with pytest.raises(ValidationError):
        StatusEventDraft(company_name="Acme", status_type="acquisition", start_date=date(2024, 3, 1), description="x")


def test_contributing_source_requires_attached_source():
    draft = StatusEventDraft(company_name="Acme", status_type="layoff", start_date=date(2024, 3, 1), description="x")

    with pytest.raises(ValueError):
        draft.contributing_source()


def test_contributing_source_prefers_article_url():
    source = make_source("Reuters", 95)
    draft = StatusEventDraft(
        company_name="Acme",
        status_type="layoff",
        start_date=date(2024, 3, 1),
        description="x",
        source_url="https://reuters.example.com/acme-layoffs",
        source=source,
    )

    contribution = draft.contributing_source(added_at=NOW)

    assert contribution.name == "Reuters"
    assert contribution.url == "https://reuters.example.com/acme-layoffs"
    assert contribution.reliability == 95
    assert contribution.added_at == NOW


def test_event_requires_at_least_one_source():
    with pytest.raises(ValidationError):
        _event(sources=[])


def test_apply_patch_is_append_only_and_fills_gaps():
    event = _event(employee_count_impact=None, affected_departments=["Sales"])
    patch = EventPatch(
        append_sources=[
            ContributingSource(name="Reuters", url="https://other.example.com", reliability=95),
            ContributingSource(name="TechCrunch", url="https://tc.example.com/a", reliability=80),
        ],
        employee_count_impact=300,
        affected_departments=["sales", "Support"],
        end_date=date(2024, 6, 1),
        merged_at=NOW,
    )

    updated = apply_patch(event, patch, now=NOW)

    assert [source.name for source in updated.sources] == ["Reuters", "TechCrunch"]
    assert updated.employee_count_impact == 300
    assert updated.affected_departments == ["Sales", "Support"]
    assert updated.end_date == date(2024, 6, 1)
    assert updated.version == 2
    assert updated.updated_at == NOW
    assert event.version == 1


def test_apply_patch_keeps_known_values():
    event = _event(employee_count_impact=200, end_date=date(2024, 5, 1), verified=True)

    updated = apply_patch(
        event, EventPatch(employee_count_impact=999, end_date=date(2024, 7, 1), verified=False)
    )

    assert updated.employee_count_impact == 200
    assert updated.end_date == date(2024, 5, 1)
    assert updated.verified is True
