"""Deterministic stand-ins for the classifier and page fetcher."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date
from typing import Any

from app.clients.firecrawl import PageFetchError
from app.models.status_event import SourceDescriptor, StatusEventDraft
from app.services.events.errors import ClassifierError

SameEventFn = Callable[[Any, Any], bool]


class FakeClassifier:
    """Returns canned extraction payloads and a scripted similarity verdict."""

    def __init__(
        self,
        *,
        events: list[dict[str, Any]] | None = None,
        events_by_text: dict[str, list[dict[str, Any]]] | None = None,
        same: bool | SameEventFn = False,
        extract_error: ClassifierError | None = None,
        similarity_error: ClassifierError | None = None,
    ) -> None:
        self._events = events or []
        self._events_by_text = events_by_text or {}
        self._same = same
        self._extract_error = extract_error
        self._similarity_error = similarity_error
        self.extract_calls: list[str] = []
        self.similarity_calls: list[tuple[Any, Any]] = []

    def extract_events(self, text: str) -> list[dict[str, Any]]:
        self.extract_calls.append(text)
        if self._extract_error is not None:
            raise self._extract_error
        for marker, payload in self._events_by_text.items():
            if marker in text:
                return [dict(item) for item in payload]
        return [dict(item) for item in self._events]

    def same_event(self, first: Any, second: Any) -> bool:
        self.similarity_calls.append((first, second))
        if self._similarity_error is not None:
            raise self._similarity_error
        if callable(self._same):
            return self._same(first, second)
        return self._same


class FakeFetcher:
    """Serves page text per target; unknown targets or scripted errors raise."""

    def __init__(
        self,
        pages: dict[str, str],
        *,
        errors: dict[str, Iterable[PageFetchError]] | None = None,
    ) -> None:
        self._pages = pages
        self._errors = {target: list(items) for target, items in (errors or {}).items()}
        self.calls: list[str] = []

    def fetch(self, target: str) -> str:
        self.calls.append(target)
        pending = self._errors.get(target)
        if pending:
            raise pending.pop(0)
        if target not in self._pages:
            raise PageFetchError(f"No page for {target}")
        return self._pages[target]


def make_source(name: str = "Bloomberg", reliability: int = 95, target: str | None = None) -> SourceDescriptor:
    slug = name.lower().replace(" ", "-")
    return SourceDescriptor(
        name=name,
        fetch_target=target or f"https://{slug}.example.com/layoffs",
        reliability=reliability,
    )


def make_draft(
    source: SourceDescriptor,
    *,
    company_name: str = "Acme Corp",
    status_type: str = "layoff",
    start_date: date | None = None,
    description: str = "Acme Corp cuts staff.",
    **overrides: Any,
) -> StatusEventDraft:
    return StatusEventDraft(
        company_name=company_name,
        status_type=status_type,
        start_date=start_date or date.today(),
        description=description,
        source=source,
        **overrides,
    )
