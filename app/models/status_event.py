"""Domain models for company workforce status events."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, conint, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusType(str, Enum):
    """Closed set of workforce events tracked per company."""

    LAYOFF = "layoff"
    HIRING_FREEZE = "hiring_freeze"
    MASS_HIRING = "mass_hiring"
    RESTRUCTURING = "restructuring"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReconcileOutcome(str, Enum):
    """Result of reconciling one extracted draft against persisted events."""

    INSERTED = "inserted"
    MERGED = "merged"
    SKIPPED = "skipped"
    FAILED = "failed"


def _dedupe_labels(values: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        label = (value or "").strip()
        if not label or label.lower() in seen:
            continue
        seen.add(label.lower())
        ordered.append(label)
    return ordered


class SourceDescriptor(BaseModel):
    """Configured external source with a fixed editorial reliability weight."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    fetch_target: str = Field(min_length=1)
    reliability: conint(ge=0, le=100)  # type: ignore[valid-type]


class ContributingSource(BaseModel):
    """Provenance entry embedded in a status event."""

    name: str
    url: str
    reliability: conint(ge=0, le=100)  # type: ignore[valid-type]
    added_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _normalize_timestamp(self) -> ContributingSource:
        if self.added_at.tzinfo is None:
            self.added_at = self.added_at.replace(tzinfo=timezone.utc)
        return self

    def matches(self, other: ContributingSource) -> bool:
        """True when either the source name or URL is already recorded."""
        return self.name == other.name or self.url == other.url


class StatusEventDraft(BaseModel):
    """Event extracted from a single source before reconciliation."""

    company_name: str = Field(min_length=1)
    status_type: StatusType
    severity: Severity = Severity.MEDIUM
    affected_departments: list[str] = Field(default_factory=list)
    employee_count_impact: conint(ge=0) | None = None  # type: ignore[valid-type]
    start_date: date
    end_date: date | None = None
    description: str = Field(min_length=1)
    source_url: str | None = None
    source: SourceDescriptor | None = None

    @field_validator("company_name", "description", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("status_type", mode="before")
    @classmethod
    def _normalize_status_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower().replace(" ", "_").replace("-", "_")
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def _default_severity(cls, value: object) -> object:
        if value is None or value == "":
            return Severity.MEDIUM
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("affected_departments", mode="before")
    @classmethod
    def _coerce_departments(cls, value: object) -> object:
        if value is None:
            return []
        return value

    @field_validator("source_url", mode="before")
    @classmethod
    def _blank_url(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _finalize(self) -> StatusEventDraft:
        self.affected_departments = _dedupe_labels(self.affected_departments)
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot precede start_date.")
        return self

    def contributing_source(self, *, added_at: datetime | None = None) -> ContributingSource:
        """Build the provenance entry for the source that produced this draft."""
        if self.source is None:
            raise ValueError("Draft has no source attached.")
        return ContributingSource(
            name=self.source.name,
            url=self.source_url or self.source.fetch_target,
            reliability=self.source.reliability,
            added_at=added_at or _utcnow(),
        )


class StatusEvent(BaseModel):
    """Persisted, corroborated record of one real-world workforce event."""

    id: UUID | None = None
    company_name: str
    status_type: StatusType
    severity: Severity = Severity.MEDIUM
    affected_departments: list[str] = Field(default_factory=list)
    employee_count_impact: conint(ge=0) | None = None  # type: ignore[valid-type]
    start_date: date
    end_date: date | None = None
    description: str
    verified: bool = False
    auto_verified: bool = False
    sources: list[ContributingSource] = Field(min_length=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None
    last_merged_at: datetime | None = None
    version: conint(ge=1) = 1  # type: ignore[valid-type]

    @model_validator(mode="after")
    def _default_updated_at(self) -> StatusEvent:
        if self.updated_at is None or self.updated_at < self.created_at:
            self.updated_at = self.created_at
        return self

    @property
    def source_count(self) -> int:
        return len(self.sources)

    @property
    def highest_reliability(self) -> int:
        return max((source.reliability for source in self.sources), default=0)

    def has_source(self, candidate: ContributingSource) -> bool:
        return any(existing.matches(candidate) for existing in self.sources)


class EventPatch(BaseModel):
    """Partial update applied by the merge engine.

    Sources are append-only and ``verified`` is OR-ed with the stored value, so a
    patch can never shrink provenance or clear verification.
    """

    append_sources: list[ContributingSource] = Field(default_factory=list)
    verified: bool | None = None
    description: str | None = None
    employee_count_impact: conint(ge=0) | None = None  # type: ignore[valid-type]
    affected_departments: list[str] | None = None
    end_date: date | None = None
    merged_at: datetime | None = None


def apply_patch(event: StatusEvent, patch: EventPatch, *, now: datetime | None = None) -> StatusEvent:
    """Return a copy of ``event`` with ``patch`` applied and the version bumped."""
    timestamp = now or _utcnow()
    sources = list(event.sources)
    for source in patch.append_sources:
        if not any(existing.matches(source) for existing in sources):
            sources.append(source)

    updates: dict[str, object] = {
        "sources": sources,
        "verified": event.verified or bool(patch.verified),
        "updated_at": timestamp,
        "version": event.version + 1,
    }
    if patch.description is not None:
        updates["description"] = patch.description
    if patch.employee_count_impact is not None and event.employee_count_impact is None:
        updates["employee_count_impact"] = patch.employee_count_impact
    if patch.affected_departments is not None:
        updates["affected_departments"] = _dedupe_labels(
            [*event.affected_departments, *patch.affected_departments]
        )
    if patch.end_date is not None and event.end_date is None:
        updates["end_date"] = patch.end_date
    if patch.merged_at is not None:
        updates["last_merged_at"] = patch.merged_at
    return event.model_copy(update=updates)
