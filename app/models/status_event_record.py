"""SQLModel mapping for persisted company status events."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression
from sqlmodel import Field, SQLModel

from app.models.status_event import ContributingSource, StatusEvent


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSON_BACKING_TYPE = sa.JSON().with_variant(JSONB(astext_type=sa.Text()), "postgresql")


class UtcNow(expression.FunctionElement):
    """Dialect-aware server default that pins timestamps to UTC."""

    type = DateTime(timezone=True)
    inherit_cache = True


@compiles(UtcNow)
def _utc_now_default(element, compiler, **kwargs) -> str:  # pragma: no cover - trivial sql generator
    return "CURRENT_TIMESTAMP"


@compiles(UtcNow, "postgresql")
def _utc_now_default_postgres(element, compiler, **kwargs) -> str:  # pragma: no cover - trivial sql generator
    return "timezone('utc', now())"


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on round-trip.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class StatusEventRecord(SQLModel, table=True):
    """ORM row for a StatusEvent; sources are stored as an embedded JSON array."""

    __tablename__ = "company_status_events"
    __table_args__ = (
        sa.Index(
            "ix_company_status_events_candidates",
            "company_key",
            "status_type",
            "start_date",
        ),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    company_name: str = Field(sa_column=Column(String(length=255), nullable=False))
    company_key: str = Field(sa_column=Column(String(length=255), nullable=False))
    status_type: str = Field(sa_column=Column(String(length=32), nullable=False))
    severity: str = Field(sa_column=Column(String(length=16), nullable=False))
    affected_departments: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON_BACKING_TYPE, nullable=False),
    )
    employee_count_impact: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    start_date: date = Field(sa_column=Column(Date, nullable=False))
    end_date: date | None = Field(default=None, sa_column=Column(Date, nullable=True))
    description: str = Field(sa_column=Column(Text, nullable=False))
    verified: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    auto_verified: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    sources: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON_BACKING_TYPE, nullable=False),
    )
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False))
    last_merged_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )

    @classmethod
    def from_status_event(cls, event: StatusEvent, *, company_key: str) -> StatusEventRecord:
        """Convert an in-memory StatusEvent into a persistence row."""
        return cls(
            id=event.id or uuid4(),
            company_name=event.company_name,
            company_key=company_key,
            status_type=event.status_type.value,
            severity=event.severity.value,
            affected_departments=list(event.affected_departments),
            employee_count_impact=event.employee_count_impact,
            start_date=event.start_date,
            end_date=event.end_date,
            description=event.description,
            verified=event.verified,
            auto_verified=event.auto_verified,
            sources=[source.model_dump(mode="json") for source in event.sources],
            version=event.version,
            last_merged_at=event.last_merged_at,
            created_at=event.created_at,
            updated_at=event.updated_at or event.created_at,
        )

    @staticmethod
    def mutable_values(event: StatusEvent) -> dict[str, Any]:
        """Column values a merge may change; identity, keys and created_at never do."""
        return {
            "severity": event.severity.value,
            "affected_departments": list(event.affected_departments),
            "employee_count_impact": event.employee_count_impact,
            "end_date": event.end_date,
            "description": event.description,
            "verified": event.verified,
            "sources": [source.model_dump(mode="json") for source in event.sources],
            "version": event.version,
            "last_merged_at": event.last_merged_at,
            "updated_at": event.updated_at or _utcnow(),
        }

    def to_status_event(self) -> StatusEvent:
        """Hydrate a StatusEvent domain model from the stored row."""
        return StatusEvent(
            id=self.id,
            company_name=self.company_name,
            status_type=self.status_type,
            severity=self.severity,
            affected_departments=list(self.affected_departments or []),
            employee_count_impact=self.employee_count_impact,
            start_date=self.start_date,
            end_date=self.end_date,
            description=self.description,
            verified=self.verified,
            auto_verified=self.auto_verified,
            sources=[ContributingSource(**entry) for entry in self.sources],
            version=self.version,
            last_merged_at=_as_utc(self.last_merged_at),
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at),
        )
