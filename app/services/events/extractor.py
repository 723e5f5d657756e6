"""Turns fetched page text into status event drafts tagged with their source."""

from __future__ import annotations

import logging
import time

from pydantic import ValidationError

from app.models.status_event import SourceDescriptor, StatusEventDraft
from app.observability.metrics import metrics
from app.services.events.classifier import SemanticClassifier
from app.services.events.errors import ClassifierError, EventExtractionError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 15_000


class EventExtractor:
    """Bounds classifier input and validates its structured output."""

    def __init__(self, classifier: SemanticClassifier, *, max_chars: int = DEFAULT_MAX_CHARS) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be a positive integer.")
        self._classifier = classifier
        self._max_chars = max_chars

    def extract(self, source_text: str, source: SourceDescriptor) -> list[StatusEventDraft]:
        """Return drafts for ``source``; any classifier failure yields an empty list."""
        try:
            return self.extract_strict(source_text, source)
        except EventExtractionError:
            return []

    def extract_strict(self, source_text: str, source: SourceDescriptor) -> list[StatusEventDraft]:
        """Like ``extract`` but raises ``EventExtractionError`` so callers can count failures."""
        tags = {"source": source.name}
        truncated = (source_text or "")[: self._max_chars]
        start = time.perf_counter()
        try:
            raw_items = self._classifier.extract_events(truncated)
        except ClassifierError as exc:
            metrics.increment("events.extract.errors", tags={**tags, "code": exc.code})
            logger.error(
                "events.extract.failed",
                extra={"source": source.name, "code": exc.code, "error": str(exc)},
            )
            raise EventExtractionError(
                f"Extraction failed for {source.name}: {exc}", code=exc.code
            ) from exc
        finally:
            metrics.timing("events.extract.latency_ms", (time.perf_counter() - start) * 1000, tags=tags)

        drafts: list[StatusEventDraft] = []
        for index, item in enumerate(raw_items):
            try:
                draft = StatusEventDraft.model_validate({**item, "source": source})
            except ValidationError as exc:
                logger.warning(
                    "events.extract.invalid_item",
                    extra={"source": source.name, "index": index, "errors": exc.error_count()},
                )
                continue
            drafts.append(draft)

        metrics.increment("events.extract.drafts", len(drafts), tags=tags)
        logger.info(
            "events.extract.completed",
            extra={
                "source": source.name,
                "drafts": len(drafts),
                "dropped": len(raw_items) - len(drafts),
                "truncated": len(source_text or "") > self._max_chars,
            },
        )
        return drafts
