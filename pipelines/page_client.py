"""Runtime page fetcher selection for online vs. fixture modes."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

from app.clients.firecrawl import FirecrawlClient, PageFetchError
from app.config import Settings, settings
from app.services.events.errors import IngestionConfigError

logger = logging.getLogger("pipelines.page_client")

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


class RuntimeMode(str, Enum):
    """Available runtime behaviors."""

    ONLINE = "online"
    FIXTURE = "fixture"


class FixtureNotFoundError(PageFetchError):
    """Raised when no fixture page exists for a fetch target."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Fixture not found: {path}", code="E_FIXTURE_NOT_FOUND")
        self.path = path


@dataclass(frozen=True)
class RuntimeConfig:
    """Resolved runtime configuration."""

    mode: RuntimeMode
    fixture_dir: Path | None = None


class PageFetcher(Protocol):
    """Returns best-effort text for a target or raises PageFetchError."""

    def fetch(self, target: str) -> str:
        ...


def get_runtime_config(config: Settings | None = None) -> RuntimeConfig:
    """Resolve runtime mode from settings (WORKFORCE_SIGNAL_MODE)."""
    config = config or settings
    raw_mode = (config.workforce_signal_mode or RuntimeMode.FIXTURE.value).strip().lower()
    try:
        mode = RuntimeMode(raw_mode)
    except ValueError as exc:
        raise IngestionConfigError(
            f"Unsupported WORKFORCE_SIGNAL_MODE value: {config.workforce_signal_mode}",
            code="E_MODE_UNSUPPORTED",
        ) from exc
    fixture_dir = Path(config.fixture_dir).expanduser() if mode is RuntimeMode.FIXTURE else None
    logger.info("Workforce Signal runtime mode=%s", mode.value)
    return RuntimeConfig(mode=mode, fixture_dir=fixture_dir)


def get_page_fetcher(runtime: RuntimeConfig | None = None, config: Settings | None = None) -> PageFetcher:
    """Return the fetcher for the configured mode."""
    config = config or settings
    runtime = runtime or get_runtime_config(config)
    if runtime.mode is RuntimeMode.FIXTURE:
        return FixturePageFetcher(runtime.fixture_dir or Path(config.fixture_dir))
    if not config.firecrawl_api_key:
        raise IngestionConfigError("FIRECRAWL_API_KEY is required when WORKFORCE_SIGNAL_MODE=online.")
    return FirecrawlClient(
        config.firecrawl_api_key,
        base_url=config.firecrawl_base_url,
        timeout=config.request_timeout_seconds,
    )


def fixture_slug(target: str) -> str:
    """Map a fetch target URL to its fixture file stem."""
    parsed = urlparse(target)
    netloc = parsed.netloc.lower()
    if netloc.startswith("www."):
        netloc = netloc[4:]
    slug = _SLUG_PATTERN.sub("-", f"{netloc}{parsed.path}".lower()).strip("-")
    return slug or _SLUG_PATTERN.sub("-", target.lower()).strip("-")


class FixturePageFetcher:
    """Serves pre-captured markdown snapshots from ``<fixture_dir>/<slug>.md``."""

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir

    def fetch(self, target: str) -> str:
        path = (self._base_dir / f"{fixture_slug(target)}.md").resolve()
        if not path.exists():
            raise FixtureNotFoundError(str(path))
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise PageFetchError(f"Fixture page is unreadable: {path}", code="FETCH_UNREADABLE") from exc
        if not content.strip():
            raise PageFetchError(f"Fixture page is empty: {path}", code="FETCH_EMPTY")
        return content
