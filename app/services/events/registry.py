"""Static registry of news sources and their editorial reliability weights."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from app.models.status_event import SourceDescriptor
from app.services.events.errors import IngestionConfigError

logger = logging.getLogger(__name__)

DEFAULT_SOURCES: tuple[SourceDescriptor, ...] = (
    SourceDescriptor(name="Bloomberg", fetch_target="https://www.bloomberg.com/topics/layoffs", reliability=95),
    SourceDescriptor(name="Reuters", fetch_target="https://www.reuters.com/business/future-of-work/", reliability=95),
    SourceDescriptor(name="Bloomberg Technology", fetch_target="https://www.bloomberg.com/technology", reliability=95),
    SourceDescriptor(name="Reuters Technology", fetch_target="https://www.reuters.com/technology/", reliability=95),
    SourceDescriptor(name="TechCrunch", fetch_target="https://techcrunch.com/tag/layoffs/", reliability=80),
    SourceDescriptor(name="The Verge", fetch_target="https://www.theverge.com/tech", reliability=75),
    SourceDescriptor(name="LinkedIn News", fetch_target="https://www.linkedin.com/news/topic/tech-layoffs", reliability=70),
)


def load_sources(path: Path | str | None = None) -> tuple[SourceDescriptor, ...]:
    """Return the configured sources, reading YAML when ``path`` is given.

    The YAML document is either a list of sources or a mapping with a
    ``sources`` key; each entry needs ``name``, ``fetch_target`` (or ``url``)
    and ``reliability``.
    """
    if path is None:
        return DEFAULT_SOURCES

    source_path = Path(path).expanduser()
    if not source_path.exists():
        raise IngestionConfigError(f"Source registry not found at {source_path}")
    try:
        raw = yaml.safe_load(source_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise IngestionConfigError(f"Unable to parse source registry: {exc}", code="E_SOURCES_INVALID") from exc

    entries = raw.get("sources") if isinstance(raw, Mapping) else raw
    if not isinstance(entries, list) or not entries:
        raise IngestionConfigError("Source registry must list at least one source.", code="E_SOURCES_INVALID")

    sources: list[SourceDescriptor] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise IngestionConfigError(f"Source #{index} must be a mapping.", code="E_SOURCES_INVALID")
        payload = dict(entry)
        if "fetch_target" not in payload and "url" in payload:
            payload["fetch_target"] = payload.pop("url")
        try:
            source = SourceDescriptor.model_validate(payload)
        except ValidationError as exc:
            raise IngestionConfigError(f"Source #{index} is invalid: {exc}", code="E_SOURCES_INVALID") from exc
        if source.name in seen:
            raise IngestionConfigError(f"Duplicate source name: {source.name}", code="E_SOURCES_INVALID")
        seen.add(source.name)
        sources.append(source)

    logger.info("sources.registry.loaded", extra={"path": str(source_path), "count": len(sources)})
    return tuple(sources)
