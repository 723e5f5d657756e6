"""Read API over persisted workforce status events."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.models.status_event import StatusEvent, StatusType
from app.services.events.confidence import ConfidenceTier, assess
from app.services.events.errors import EventPersistenceError
from app.services.events.repositories import EventRepository, get_event_repository

router = APIRouter()
logger = logging.getLogger(__name__)


class EventView(StatusEvent):
    """Status event decorated with its derived confidence."""

    confidence_score: int
    confidence_tier: ConfidenceTier

    @classmethod
    def from_event(cls, event: StatusEvent) -> EventView:
        assessment = assess(event)
        return cls(
            **event.model_dump(),
            confidence_score=assessment.score,
            confidence_tier=assessment.tier,
        )


@router.get("/events", response_model=list[EventView])
def list_events(
    company: str | None = Query(None, description="Case-insensitive company name filter."),
    status_type: StatusType | None = Query(None, description="Restrict to one event type."),
    limit: int = Query(50, ge=1, le=500),
    repository: EventRepository = Depends(get_event_repository),
) -> list[EventView]:
    """List events, most recent start date first."""
    try:
        events = repository.list_events(company_name=company, status_type=status_type, limit=limit)
    except EventPersistenceError as exc:
        logger.error("events.api_error", extra={"operation": "list", "code": exc.code})
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc
    return [EventView.from_event(event) for event in events]


@router.get("/events/{event_id}", response_model=EventView)
def get_event(
    event_id: UUID,
    repository: EventRepository = Depends(get_event_repository),
) -> EventView:
    try:
        event = repository.get(event_id)
    except EventPersistenceError as exc:
        logger.error("events.api_error", extra={"operation": "get", "code": exc.code})
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc
    if event is None:
        raise HTTPException(status_code=404, detail="Status event not found.")
    return EventView.from_event(event)


def _map_error_code(code: str) -> int:
    if code == "404_EVENT_NOT_FOUND":
        return status.HTTP_404_NOT_FOUND
    if code in ("409_EVENT_EXISTS", "409_VERSION_CONFLICT"):
        return status.HTTP_409_CONFLICT
    return status.HTTP_500_INTERNAL_SERVER_ERROR
