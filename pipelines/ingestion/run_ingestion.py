"""Periodic multi-source ingestion run for company workforce events."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from app.clients.firecrawl import (
    FirecrawlRateLimitError,
    FirecrawlTimeoutError,
    PageFetchError,
)
from app.config import Settings, settings
from app.models.status_event import ReconcileOutcome, SourceDescriptor
from app.observability.metrics import metrics
from app.services.events.classifier import SemanticClassifier, build_classifier
from app.services.events.errors import EventExtractionError, IngestionConfigError
from app.services.events.extractor import EventExtractor
from app.services.events.merge import MergeEngine
from app.services.events.registry import load_sources
from app.services.events.repositories import EventRepository, build_event_repository
from pipelines.page_client import PageFetcher, get_page_fetcher
from scripts.backoff import call_with_backoff

logger = logging.getLogger("pipelines.ingestion.run_ingestion")

SleepFn = Callable[[float], None]
DEFAULT_DELAY_SECONDS = 2.0
DEFAULT_FETCH_ATTEMPTS = 3


@dataclass
class RunSummary:
    """Aggregate counters for one ingestion run."""

    sources_processed: int = 0
    events_found: int = 0
    inserted: int = 0
    merged: int = 0
    skipped: int = 0
    errors: int = 0
    failed_sources: list[str] = field(default_factory=list)

    def record(self, outcome: ReconcileOutcome) -> None:
        if outcome is ReconcileOutcome.INSERTED:
            self.inserted += 1
        elif outcome is ReconcileOutcome.MERGED:
            self.merged += 1
        elif outcome is ReconcileOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    @property
    def message(self) -> str:
        return f"Scraping complete: {self.inserted} new, {self.merged} merged, {self.skipped} skipped"

    def as_response(self) -> dict[str, Any]:
        """Render the run-trigger JSON contract."""
        return {
            "success": True,
            "message": self.message,
            "totalFound": self.events_found,
            "inserted": self.inserted,
            "merged": self.merged,
            "skipped": self.skipped,
            "sourcesProcessed": self.sources_processed,
            "errors": self.errors,
        }


class IngestionPipeline:
    """Fetch, extract and reconcile each configured source in order."""

    def __init__(
        self,
        *,
        sources: Sequence[SourceDescriptor],
        fetcher: PageFetcher,
        extractor: EventExtractor,
        engine: MergeEngine,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        fetch_attempts: int = DEFAULT_FETCH_ATTEMPTS,
        sleep: SleepFn | None = None,
    ) -> None:
        if fetch_attempts < 1:
            raise ValueError("fetch_attempts must be >= 1")
        self._sources = tuple(sources)
        self._fetcher = fetcher
        self._extractor = extractor
        self._engine = engine
        self._delay_seconds = max(0.0, delay_seconds)
        self._fetch_attempts = fetch_attempts
        self._sleep = sleep or time.sleep

    @property
    def sources(self) -> tuple[SourceDescriptor, ...]:
        return self._sources

    def run_once(self) -> RunSummary:
        """Process every source once; per-source failures only show up in counters."""
        summary = RunSummary()
        start = time.perf_counter()
        logger.info("Ingestion run start. sources=%s", len(self._sources))

        for index, source in enumerate(self._sources):
            if index and self._delay_seconds:
                self._sleep(self._delay_seconds)
            summary.sources_processed += 1
            self._process_source(source, summary)

        elapsed = time.perf_counter() - start
        metrics.timing("ingestion.run.latency_ms", elapsed * 1000)
        metrics.gauge("ingestion.run.errors", summary.errors)
        logger.info(
            "Ingestion summary: sources=%s found=%s inserted=%s merged=%s skipped=%s errors=%s duration=%.2fs",
            summary.sources_processed,
            summary.events_found,
            summary.inserted,
            summary.merged,
            summary.skipped,
            summary.errors,
            elapsed,
        )
        return summary

    def _process_source(self, source: SourceDescriptor, summary: RunSummary) -> None:
        tags = {"source": source.name}
        try:
            content = self._fetch_with_retries(source)
        except PageFetchError as exc:
            summary.errors += 1
            summary.failed_sources.append(source.name)
            metrics.increment("ingestion.source.fetch_failed", tags={**tags, "code": exc.code})
            logger.error("Fetch failed for %s: %s (code=%s)", source.name, exc, exc.code)
            return

        try:
            drafts = self._extractor.extract_strict(content, source)
        except EventExtractionError:
            summary.errors += 1
            summary.failed_sources.append(source.name)
            metrics.increment("ingestion.source.extract_failed", tags=tags)
            return

        summary.events_found += len(drafts)
        logger.info("Extracted %s events from %s.", len(drafts), source.name)
        for draft in drafts:
            result = self._engine.reconcile(draft)
            summary.record(result.outcome)

    def _fetch_with_retries(self, source: SourceDescriptor) -> str:
        def _log_retry(attempt: int, delay: float, exc: Exception) -> None:
            logger.warning(
                "provider.retry",
                extra={
                    "provider": "page_fetcher",
                    "source": source.name,
                    "code": getattr(exc, "code", None),
                    "attempt": attempt,
                    "max_attempts": self._fetch_attempts,
                    "delay_ms": round(delay * 1000, 2),
                },
            )

        return call_with_backoff(
            lambda: self._fetcher.fetch(source.fetch_target),
            retry_on=(FirecrawlRateLimitError, FirecrawlTimeoutError),
            max_attempts=self._fetch_attempts,
            base_delay=1.0,
            sleep=self._sleep,
            on_retry=_log_retry,
        )


def build_pipeline(
    config: Settings | None = None,
    *,
    sources_path: Path | str | None = None,
    delay_seconds: float | None = None,
    repository: EventRepository | None = None,
    classifier: SemanticClassifier | None = None,
    fetcher: PageFetcher | None = None,
) -> IngestionPipeline:
    """Wire the pipeline from settings; raises IngestionConfigError before any fetch."""
    config = config or settings
    sources = load_sources(sources_path or config.sources_config_path)
    classifier = classifier or build_classifier(config)
    fetcher = fetcher or get_page_fetcher(config=config)
    repository = repository or build_event_repository(company_name_matching=config.company_name_matching)
    engine = MergeEngine(
        repository,
        classifier,
        lookback_days=config.lookback_days,
        candidate_limit=config.candidate_limit,
        auto_verify_threshold=config.auto_verify_threshold,
        conflict_retries=config.merge_conflict_retries,
    )
    return IngestionPipeline(
        sources=sources,
        fetcher=fetcher,
        extractor=EventExtractor(classifier, max_chars=config.extraction_max_chars),
        engine=engine,
        delay_seconds=config.inter_source_delay_seconds if delay_seconds is None else delay_seconds,
    )


def run_once(**kwargs: Any) -> RunSummary:
    """Build a pipeline from settings and execute a single run."""
    return build_pipeline(**kwargs).run_once()


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Run one workforce event ingestion pass.")
    parser.add_argument(
        "--sources",
        type=Path,
        default=None,
        help="YAML source registry (defaults to SOURCES_CONFIG_PATH or the built-in list).",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds to wait between sources (defaults to INTER_SOURCE_DELAY_SECONDS).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        summary = run_once(sources_path=args.sources, delay_seconds=args.delay)
    except IngestionConfigError as exc:
        logger.error("Ingestion could not start: %s (code=%s)", exc, exc.code)
        print(json.dumps({"success": False, "error": str(exc)}))
        return 1
    print(json.dumps(summary.as_response()))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
