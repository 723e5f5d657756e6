"""Trigger endpoint for a single ingestion run."""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.services.events.errors import IngestionConfigError
from app.services.events.repositories import get_event_repository
from pipelines.ingestion.run_ingestion import IngestionPipeline, build_pipeline

router = APIRouter()
logger = logging.getLogger(__name__)

PipelineFactory = Callable[[], IngestionPipeline]


def _default_factory() -> IngestionPipeline:
    return build_pipeline(repository=get_event_repository())


def get_pipeline_factory() -> PipelineFactory:
    """Dependency returning the pipeline builder; overridden in tests."""
    return _default_factory


@router.post("/ingestion/run")
def run_ingestion(factory: PipelineFactory = Depends(get_pipeline_factory)):
    """Run every configured source once and report the summary counters."""
    try:
        pipeline = factory()
    except IngestionConfigError as exc:
        logger.error("ingestion.api_error", extra={"code": exc.code, "error": str(exc)})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc)},
        )
    summary = pipeline.run_once()
    return summary.as_response()
