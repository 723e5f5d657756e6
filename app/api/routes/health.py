from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.config import settings
from app.services.events.repositories import EventRepository, get_event_repository

logger = logging.getLogger(__name__)
router = APIRouter()


def _service_info() -> dict[str, str]:
    return {"version": settings.app_version, "environment": settings.environment}


@router.get("")
def liveness():
    """Process is up; does not touch storage."""
    return {"status": "healthy", **_service_info()}


@router.get("/ready")
def readiness(repository: EventRepository = Depends(get_event_repository)):
    """Storage must answer a trivial query before the service reports ready."""
    if not repository.ping():
        logger.warning("health.readiness.failed", extra={"storage": _storage_label()})
        raise HTTPException(status_code=503, detail="Event storage is not available")
    return {"status": "ready", "storage": _storage_label(), **_service_info()}


def _storage_label() -> str:
    return "database" if settings.database_url else "memory"
