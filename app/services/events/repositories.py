"""Persistence backends for company status events."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from threading import Lock
from typing import Protocol
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from app.config import settings
from app.core.database import build_engine, check_database_health
from app.models.status_event import EventPatch, StatusEvent, StatusType, apply_patch
from app.models.status_event_record import StatusEventRecord
from app.observability.metrics import metrics
from app.services.events.errors import ConcurrentUpdateError, EventPersistenceError
from app.services.events.policies import CompanyKeyFn, exact_company_key, resolve_company_key

logger = logging.getLogger(__name__)

DEFAULT_CANDIDATE_LIMIT = 5
DEFAULT_LIST_LIMIT = 50


class EventRepository(Protocol):
    """Persistence contract for status events."""

    company_key: CompanyKeyFn

    def find_candidates(
        self,
        company_name: str,
        status_type: StatusType,
        since: date,
        *,
        limit: int = DEFAULT_CANDIDATE_LIMIT,
    ) -> list[StatusEvent]:
        ...

    def insert(self, event: StatusEvent) -> StatusEvent:
        ...

    def update(
        self, event_id: UUID, patch: EventPatch, *, expected_version: int | None = None
    ) -> StatusEvent:
        ...

    def get(self, event_id: UUID) -> StatusEvent | None:
        ...

    def list_events(
        self,
        *,
        company_name: str | None = None,
        status_type: StatusType | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[StatusEvent]:
        ...

    def ping(self) -> bool:
        ...


def _not_found(event_id: UUID) -> EventPersistenceError:
    return EventPersistenceError(f"Status event {event_id} not found.", code="404_EVENT_NOT_FOUND")


def _recency_key(event: StatusEvent) -> tuple[date, object]:
    return (event.start_date, event.created_at)


class InMemoryEventRepository(EventRepository):
    """Thread-safe repository used for local development and tests."""

    def __init__(self, *, company_key: CompanyKeyFn = exact_company_key) -> None:
        self.company_key = company_key
        self._events: dict[UUID, StatusEvent] = {}
        self._lock = Lock()

    def find_candidates(
        self,
        company_name: str,
        status_type: StatusType,
        since: date,
        *,
        limit: int = DEFAULT_CANDIDATE_LIMIT,
    ) -> list[StatusEvent]:
        key = self.company_key(company_name)
        with self._lock:
            matches = [
                event
                for event in self._events.values()
                if self.company_key(event.company_name) == key
                and event.status_type == status_type
                and event.start_date >= since
            ]
        matches.sort(key=_recency_key, reverse=True)
        return matches[: max(0, limit)]

    def insert(self, event: StatusEvent) -> StatusEvent:
        stored = event.model_copy(update={"id": event.id or uuid4(), "version": 1})
        with self._lock:
            if stored.id in self._events:
                raise EventPersistenceError(
                    f"Status event {stored.id} already exists.", code="409_EVENT_EXISTS"
                )
            self._events[stored.id] = stored
        metrics.increment("events.persistence.inserted", tags={"repository": "memory"})
        return stored

    def update(
        self, event_id: UUID, patch: EventPatch, *, expected_version: int | None = None
    ) -> StatusEvent:
        with self._lock:
            current = self._events.get(event_id)
            if current is None:
                raise _not_found(event_id)
            if expected_version is not None and current.version != expected_version:
                metrics.increment("events.persistence.conflict", tags={"repository": "memory"})
                raise ConcurrentUpdateError()
            updated = apply_patch(current, patch)
            self._events[event_id] = updated
        metrics.increment("events.persistence.updated", tags={"repository": "memory"})
        return updated

    def get(self, event_id: UUID) -> StatusEvent | None:
        with self._lock:
            return self._events.get(event_id)

    def list_events(
        self,
        *,
        company_name: str | None = None,
        status_type: StatusType | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[StatusEvent]:
        needle = (company_name or "").strip().lower()
        with self._lock:
            events = [
                event
                for event in self._events.values()
                if (not needle or needle in event.company_name.lower())
                and (status_type is None or event.status_type == status_type)
            ]
        events.sort(key=_recency_key, reverse=True)
        return events[: max(0, limit)]

    def ping(self) -> bool:
        return True


class SqlEventRepository(EventRepository):
    """SQLModel-backed repository for Postgres/Supabase or SQLite."""

    def __init__(
        self,
        database_url: str,
        *,
        company_key: CompanyKeyFn = exact_company_key,
        pool_min_size: int | None = None,
        pool_max_size: int | None = None,
        auto_create_schema: bool = False,
    ) -> None:
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlEventRepository.")
        self.company_key = company_key
        self._engine: Engine = build_engine(
            database_url,
            pool_min_size=pool_min_size,
            pool_max_size=pool_max_size,
        )
        if auto_create_schema:
            SQLModel.metadata.create_all(self._engine)
        self._metrics_tags = {"repository": self._engine.dialect.name}

    def dispose(self) -> None:
        """Close the underlying SQLAlchemy engine."""
        self._engine.dispose()

    def find_candidates(
        self,
        company_name: str,
        status_type: StatusType,
        since: date,
        *,
        limit: int = DEFAULT_CANDIDATE_LIMIT,
    ) -> list[StatusEvent]:
        try:
            with self._session() as session:
                statement = (
                    select(StatusEventRecord)
                    .where(
                        StatusEventRecord.company_key == self.company_key(company_name),
                        StatusEventRecord.status_type == status_type.value,
                        StatusEventRecord.start_date >= since,
                    )
                    .order_by(StatusEventRecord.start_date.desc(), StatusEventRecord.created_at.desc())
                    .limit(max(0, limit))
                )
                return [record.to_status_event() for record in session.exec(statement).all()]
        except SQLAlchemyError as exc:
            logger.exception(
                "events.persistence.error",
                extra={"operation": "find_candidates", "company_name": company_name},
            )
            raise EventPersistenceError("Failed to load merge candidates.", code="500_INTERNAL") from exc

    def insert(self, event: StatusEvent) -> StatusEvent:
        record = StatusEventRecord.from_status_event(
            event.model_copy(update={"version": 1}),
            company_key=self.company_key(event.company_name),
        )
        try:
            with self._session() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                metrics.increment("events.persistence.inserted", tags=self._metrics_tags)
                return record.to_status_event()
        except IntegrityError as exc:
            logger.warning(
                "events.persistence.conflict",
                extra={"event_id": str(record.id), "backend": self._metrics_tags["repository"]},
            )
            raise EventPersistenceError(
                f"Status event {record.id} already exists.", code="409_EVENT_EXISTS"
            ) from exc
        except SQLAlchemyError as exc:
            logger.exception(
                "events.persistence.error",
                extra={"operation": "insert", "company_name": event.company_name},
            )
            raise EventPersistenceError("Failed to insert status event.", code="500_INTERNAL") from exc

    def update(
        self, event_id: UUID, patch: EventPatch, *, expected_version: int | None = None
    ) -> StatusEvent:
        try:
            with self._session() as session:
                record = session.get(StatusEventRecord, event_id)
                if record is None:
                    raise _not_found(event_id)
                current = record.to_status_event()
                if expected_version is not None and current.version != expected_version:
                    metrics.increment("events.persistence.conflict", tags=self._metrics_tags)
                    raise ConcurrentUpdateError()
                updated = apply_patch(current, patch)
                # Conditional write: a concurrent writer that bumped the version wins.
                statement = (
                    sa.update(StatusEventRecord)
                    .where(
                        StatusEventRecord.id == event_id,
                        StatusEventRecord.version == current.version,
                    )
                    .values(**StatusEventRecord.mutable_values(updated))
                )
                result = session.connection().execute(statement)
                if result.rowcount == 0:
                    session.rollback()
                    metrics.increment("events.persistence.conflict", tags=self._metrics_tags)
                    raise ConcurrentUpdateError()
                session.commit()
                metrics.increment("events.persistence.updated", tags=self._metrics_tags)
                return updated
        except SQLAlchemyError as exc:
            logger.exception(
                "events.persistence.error",
                extra={"operation": "update", "event_id": str(event_id)},
            )
            raise EventPersistenceError("Failed to update status event.", code="500_INTERNAL") from exc

    def get(self, event_id: UUID) -> StatusEvent | None:
        try:
            with self._session() as session:
                record = session.get(StatusEventRecord, event_id)
                return record.to_status_event() if record else None
        except SQLAlchemyError as exc:
            logger.exception("events.persistence.error", extra={"operation": "get", "event_id": str(event_id)})
            raise EventPersistenceError("Failed to load status event.", code="500_INTERNAL") from exc

    def list_events(
        self,
        *,
        company_name: str | None = None,
        status_type: StatusType | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[StatusEvent]:
        statement = select(StatusEventRecord)
        if company_name:
            statement = statement.where(StatusEventRecord.company_name.ilike(f"%{company_name.strip()}%"))
        if status_type is not None:
            statement = statement.where(StatusEventRecord.status_type == status_type.value)
        statement = statement.order_by(
            StatusEventRecord.start_date.desc(), StatusEventRecord.created_at.desc()
        ).limit(max(0, limit))
        try:
            with self._session() as session:
                return [record.to_status_event() for record in session.exec(statement).all()]
        except SQLAlchemyError as exc:
            logger.exception("events.persistence.error", extra={"operation": "list_events"})
            raise EventPersistenceError("Failed to list status events.", code="500_INTERNAL") from exc

    def ping(self) -> bool:
        return check_database_health(self._engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session


def build_event_repository(
    database_url: str | None = None,
    *,
    company_name_matching: str | None = None,
) -> EventRepository:
    """Instantiate an EventRepository using DATABASE_URL when available."""
    company_key = resolve_company_key(company_name_matching or settings.company_name_matching)
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("events.repository.initialized", extra={"backend": "memory"})
        return InMemoryEventRepository(company_key=company_key)
    try:
        repository = SqlEventRepository(
            resolved_url,
            company_key=company_key,
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
        )
        logger.info("events.repository.initialized", extra={"backend": "database"})
        return repository
    except Exception:
        logger.exception("events.repository.init_failed", extra={"backend": "database"})
        raise


_REPOSITORY_INSTANCE: EventRepository | None = None


def get_event_repository() -> EventRepository:
    """Singleton accessor shared by API routes and API-triggered runs."""
    global _REPOSITORY_INSTANCE  # noqa: PLW0603
    if _REPOSITORY_INSTANCE is None:
        _REPOSITORY_INSTANCE = build_event_repository()
    return _REPOSITORY_INSTANCE
