"""Confidence scoring and verification rules for corroborated status events.

Two functions read the same corroboration state but answer different questions:

* ``score_event`` produces the 0-100 display score used for ranking.
* ``should_auto_verify`` decides whether the pipeline flips ``verified`` on merge.

Keep them separate; the display score deliberately rewards things (a single
very reliable source, the verified flag itself) that do not count as
corroboration.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from app.models.status_event import ContributingSource, StatusEvent

HIGH_RELIABILITY = 90
AUTO_VERIFY_MIN_HIGH_RELIABILITY = 2
AUTO_VERIFY_MIN_SOURCES = 3

VERIFIED_POINTS = 30
SOURCE_COUNT_POINTS = {1: 20, 2: 40}
MANY_SOURCES_POINTS = 50
RELIABILITY_POINTS = ((95, 20), (90, 15), (75, 10))
BASELINE_RELIABILITY_POINTS = 5
MULTIPLE_HIGH_RELIABILITY_BONUS = 10


class ConfidenceTier(str, Enum):
    VERY_HIGH = "very_high"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


class ReliabilityLabel(str, Enum):
    HIGHLY_RELIABLE = "highly_reliable"
    RELIABLE = "reliable"
    STANDARD = "standard"


@dataclass(frozen=True)
class ConfidenceAssessment:
    score: int
    tier: ConfidenceTier


def score_event(event: StatusEvent) -> int:
    """Compute the display confidence for an event."""
    return score_sources(event.sources, verified=event.verified)


def score_sources(sources: Sequence[ContributingSource], *, verified: bool) -> int:
    """Score an arbitrary corroboration state; ``score_event`` delegates here."""
    reliabilities = [source.reliability for source in sources]
    score = VERIFIED_POINTS if verified else 0

    source_count = len(reliabilities) or 1
    score += SOURCE_COUNT_POINTS.get(source_count, MANY_SOURCES_POINTS)

    highest = max(reliabilities, default=0)
    score += next(
        (points for threshold, points in RELIABILITY_POINTS if highest >= threshold),
        BASELINE_RELIABILITY_POINTS,
    )

    if _count_high_reliability(reliabilities) >= 2:
        score += MULTIPLE_HIGH_RELIABILITY_BONUS

    return max(0, min(100, score))


def confidence_tier(score: int) -> ConfidenceTier:
    if score >= 85:
        return ConfidenceTier.VERY_HIGH
    if score >= 70:
        return ConfidenceTier.HIGH
    if score >= 50:
        return ConfidenceTier.MODERATE
    return ConfidenceTier.LOW


def assess(event: StatusEvent) -> ConfidenceAssessment:
    score = score_event(event)
    return ConfidenceAssessment(score=score, tier=confidence_tier(score))


def should_auto_verify(sources: Sequence[ContributingSource]) -> bool:
    """Corroboration rule: two highly reliable sources, or any three sources."""
    high = _count_high_reliability(source.reliability for source in sources)
    return high >= AUTO_VERIFY_MIN_HIGH_RELIABILITY or len(sources) >= AUTO_VERIFY_MIN_SOURCES


def reliability_label(reliability: int) -> ReliabilityLabel:
    if reliability >= HIGH_RELIABILITY:
        return ReliabilityLabel.HIGHLY_RELIABLE
    if reliability >= 75:
        return ReliabilityLabel.RELIABLE
    return ReliabilityLabel.STANDARD


def _count_high_reliability(reliabilities: Iterable[int]) -> int:
    return sum(1 for value in reliabilities if value >= HIGH_RELIABILITY)
