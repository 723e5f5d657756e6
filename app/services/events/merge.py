"""Deduplication and merge engine for extracted status event drafts."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from threading import Lock

from app.models.status_event import (
    EventPatch,
    ReconcileOutcome,
    StatusEvent,
    StatusEventDraft,
    StatusType,
)
from app.observability.metrics import metrics
from app.services.events.classifier import SemanticClassifier
from app.services.events.confidence import should_auto_verify
from app.services.events.errors import ClassifierError, ConcurrentUpdateError, EventPersistenceError
from app.services.events.policies import DescriptionPolicy, prefer_longer_description
from app.services.events.repositories import EventRepository

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 60
DEFAULT_CANDIDATE_LIMIT = 5
DEFAULT_AUTO_VERIFY_THRESHOLD = 90
DEFAULT_CONFLICT_RETRIES = 3

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    event: StatusEvent | None = None
    reason: str | None = None


class _KeyedLocks:
    """One lock per (company key, status type) so writers for a key run one at a time."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[tuple[str, StatusType], Lock] = {}

    @contextmanager
    def hold(self, key: tuple[str, StatusType]) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, Lock())
        with lock:
            yield


# Shared by every engine in the process; each ingestion run builds its own engine.
_WRITE_LOCKS = _KeyedLocks()


class MergeEngine:
    """Merges a draft into a matching persisted event or inserts a new one."""

    def __init__(
        self,
        repository: EventRepository,
        classifier: SemanticClassifier,
        *,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        auto_verify_threshold: int = DEFAULT_AUTO_VERIFY_THRESHOLD,
        conflict_retries: int = DEFAULT_CONFLICT_RETRIES,
        description_policy: DescriptionPolicy = prefer_longer_description,
        clock: Clock | None = None,
    ) -> None:
        if lookback_days < 0:
            raise ValueError("lookback_days must be >= 0")
        if candidate_limit < 1:
            raise ValueError("candidate_limit must be >= 1")
        self._repository = repository
        self._classifier = classifier
        self._lookback = timedelta(days=lookback_days)
        self._candidate_limit = candidate_limit
        self._auto_verify_threshold = auto_verify_threshold
        self._conflict_retries = max(0, conflict_retries)
        self._description_policy = description_policy
        self._clock = clock or _utcnow
        self._locks = _WRITE_LOCKS

    def reconcile(self, draft: StatusEventDraft) -> ReconcileResult:
        """Insert, merge or skip ``draft``; storage failures yield ``FAILED``."""
        if draft.source is None:
            raise ValueError("Draft must be tagged with its source before reconciliation.")

        tags = {"source": draft.source.name, "status_type": draft.status_type.value}
        lock_key = (self._repository.company_key(draft.company_name), draft.status_type)
        start = time.perf_counter()
        try:
            with self._locks.hold(lock_key):
                result = self._reconcile_with_retry(draft)
        finally:
            metrics.timing("events.reconcile.latency_ms", (time.perf_counter() - start) * 1000, tags=tags)
        metrics.increment(f"events.reconcile.{result.outcome.value}", tags=tags)
        return result

    def _reconcile_with_retry(self, draft: StatusEventDraft) -> ReconcileResult:
        for attempt in range(self._conflict_retries + 1):
            try:
                return self._reconcile_once(draft)
            except ConcurrentUpdateError:
                logger.warning(
                    "events.merge.conflict",
                    extra={
                        "company_name": draft.company_name,
                        "status_type": draft.status_type.value,
                        "attempt": attempt + 1,
                    },
                )
            except EventPersistenceError as exc:
                logger.error(
                    "events.merge.persistence_failed",
                    extra={"company_name": draft.company_name, "code": exc.code, "error": str(exc)},
                )
                return ReconcileResult(ReconcileOutcome.FAILED, reason=exc.code)
        return ReconcileResult(ReconcileOutcome.FAILED, reason="409_VERSION_CONFLICT")

    def _reconcile_once(self, draft: StatusEventDraft) -> ReconcileResult:
        now = self._clock()
        candidates = self._repository.find_candidates(
            draft.company_name,
            draft.status_type,
            self._lookback_start(now),
            limit=self._candidate_limit,
        )
        for candidate in candidates[: self._candidate_limit]:
            if self._is_same_event(draft, candidate):
                return self._merge_into(candidate, draft, now=now)
        return self._insert(draft, now=now)

    def _lookback_start(self, now: datetime) -> date:
        return (now - self._lookback).date()

    def _is_same_event(self, draft: StatusEventDraft, candidate: StatusEvent) -> bool:
        try:
            return self._classifier.same_event(draft, candidate)
        except ClassifierError as exc:
            metrics.increment("events.similarity.errors", tags={"code": exc.code})
            logger.warning(
                "events.similarity.failed",
                extra={
                    "company_name": draft.company_name,
                    "candidate_id": str(candidate.id),
                    "code": exc.code,
                },
            )
            return False

    def _merge_into(self, existing: StatusEvent, draft: StatusEventDraft, *, now: datetime) -> ReconcileResult:
        contribution = draft.contributing_source(added_at=now)
        if existing.has_source(contribution):
            logger.info(
                "events.merge.skipped",
                extra={
                    "event_id": str(existing.id),
                    "company_name": existing.company_name,
                    "source": contribution.name,
                },
            )
            return ReconcileResult(ReconcileOutcome.SKIPPED, existing, reason="source_already_recorded")

        merged_sources = [*existing.sources, contribution]
        patch = EventPatch(
            append_sources=[contribution],
            verified=existing.verified or should_auto_verify(merged_sources),
            description=self._description_policy(existing.description, draft.description),
            employee_count_impact=(
                draft.employee_count_impact if existing.employee_count_impact is None else None
            ),
            affected_departments=draft.affected_departments or None,
            end_date=draft.end_date if existing.end_date is None else None,
            merged_at=now,
        )
        updated = self._repository.update(existing.id, patch, expected_version=existing.version)
        logger.info(
            "events.merge.merged",
            extra={
                "event_id": str(updated.id),
                "company_name": updated.company_name,
                "source": contribution.name,
                "source_count": updated.source_count,
                "verified": updated.verified,
            },
        )
        return ReconcileResult(ReconcileOutcome.MERGED, updated)

    def _insert(self, draft: StatusEventDraft, *, now: datetime) -> ReconcileResult:
        contribution = draft.contributing_source(added_at=now)
        auto_verified = contribution.reliability >= self._auto_verify_threshold
        event = StatusEvent(
            company_name=draft.company_name,
            status_type=draft.status_type,
            severity=draft.severity,
            affected_departments=draft.affected_departments,
            employee_count_impact=draft.employee_count_impact,
            start_date=draft.start_date,
            end_date=draft.end_date,
            description=draft.description,
            verified=auto_verified,
            auto_verified=auto_verified,
            sources=[contribution],
            created_at=now,
        )
        inserted = self._repository.insert(event)
        logger.info(
            "events.merge.inserted",
            extra={
                "event_id": str(inserted.id),
                "company_name": inserted.company_name,
                "source": contribution.name,
                "verified": inserted.verified,
            },
        )
        return ReconcileResult(ReconcileOutcome.INSERTED, inserted)
