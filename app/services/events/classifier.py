"""Semantic classifier boundary: event extraction and same-event judgment via an LLM."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from openai import APITimeoutError, OpenAI, OpenAIError, RateLimitError

from app.config import Settings, settings
from app.models.status_event import StatusEvent, StatusEventDraft
from app.services.events.errors import (
    ClassifierError,
    ClassifierRateLimitError,
    ClassifierTimeoutError,
    ClassifierValidationError,
    IngestionConfigError,
)
from scripts.backoff import call_with_backoff

logger = logging.getLogger(__name__)

_T = TypeVar("_T")
EventLike = StatusEvent | StatusEventDraft

EXTRACTION_INSTRUCTIONS = """\
Analyze this tech news content and extract any company layoff, hiring freeze, mass hiring, or restructuring announcements.

For each announcement found, return a JSON array with objects containing:
- company_name: string (company name)
- status_type: "layoff" | "hiring_freeze" | "mass_hiring" | "restructuring"
- severity: "low" | "medium" | "high" (based on impact)
- affected_departments: array of department names (if mentioned)
- employee_count_impact: number (number of employees affected, if mentioned)
- start_date: ISO date string (announcement or effective date)
- end_date: ISO date string (only if an end date is stated)
- source_url: string (source article URL if extractable)
- description: string (brief summary of the situation)

Only return the JSON array, no additional text. If no relevant announcements are found, return an empty array [].
"""

SIMILARITY_INSTRUCTIONS = """\
Return ONLY "true" if these announcements refer to the same event (even if details differ slightly), or "false" if they are different events.
Consider them the same if:
- Same company and same type of event
- Dates are within 30 days of each other
- Employee impact numbers are similar (within 20%)
- Descriptions describe the same general situation

Return only: true or false"""


class SemanticClassifier(Protocol):
    """Narrow contract the extractor and merge engine depend on."""

    def extract_events(self, text: str) -> list[dict[str, Any]]:
        ...

    def same_event(self, first: EventLike, second: EventLike) -> bool:
        ...


class ChatCompletionClient(Protocol):
    """Minimal contract for a single-prompt chat completion."""

    def complete(self, *, prompt: str, model: str, temperature: float) -> str:
        ...


class OpenAIChatClient(ChatCompletionClient):
    """Thin wrapper around an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 30.0,
        client: OpenAI | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("CLASSIFIER_API_KEY is required to create an OpenAIChatClient.")
        self._client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    def complete(self, *, prompt: str, model: str, temperature: float) -> str:
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except APITimeoutError as exc:
            raise ClassifierTimeoutError() from exc
        except RateLimitError as exc:
            raise ClassifierRateLimitError() from exc
        except OpenAIError as exc:
            raise ClassifierError(f"Classifier request failed: {exc}") from exc
        return _extract_message_text(response)


def _extract_message_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise ClassifierValidationError("Classifier response did not include choices.")
    content = getattr(choices[0].message, "content", None)
    if isinstance(content, list):
        return "".join(part.get("text", "") for part in content if isinstance(part, dict)).strip()
    if not isinstance(content, str):
        raise ClassifierValidationError("Classifier response did not include text output.")
    return content.strip()


class LLMSemanticClassifier(SemanticClassifier):
    """Classifier backed by a chat model, with retries on rate limiting."""

    def __init__(
        self,
        client: ChatCompletionClient,
        *,
        model: str,
        temperature: float = 0.0,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep or time.sleep

    def extract_events(self, text: str) -> list[dict[str, Any]]:
        raw = self._execute_with_retry(lambda: self._complete(render_extraction_prompt(text)))
        return parse_event_array(raw)

    def same_event(self, first: EventLike, second: EventLike) -> bool:
        raw = self._execute_with_retry(lambda: self._complete(render_similarity_prompt(first, second)))
        return parse_boolean_verdict(raw)

    def _complete(self, prompt: str) -> str:
        return self._client.complete(prompt=prompt, model=self._model, temperature=self._temperature)

    def _execute_with_retry(self, func: Callable[[], _T]) -> _T:
        def _log_retry(attempt: int, delay: float, exc: Exception) -> None:
            logger.warning(
                "classifier.retry",
                extra={
                    "attempt": attempt,
                    "code": getattr(exc, "code", None),
                    "delay_ms": round(delay * 1000, 2),
                },
            )

        return call_with_backoff(
            func,
            retry_on=(ClassifierRateLimitError,),
            max_attempts=self._retry_attempts,
            base_delay=self._retry_backoff_seconds,
            sleep=self._sleep,
            on_retry=_log_retry,
        )


def render_extraction_prompt(text: str) -> str:
    return f"{EXTRACTION_INSTRUCTIONS}\nContent to analyze:\n{text}"


def render_similarity_prompt(first: EventLike, second: EventLike) -> str:
    return (
        "Compare these two company announcements and determine if they refer to the same event.\n\n"
        f"{_render_summary('Announcement 1', first)}\n"
        f"{_render_summary('Announcement 2', second)}\n"
        f"{SIMILARITY_INSTRUCTIONS}"
    )


def _render_summary(label: str, event: EventLike) -> str:
    impact = event.employee_count_impact if event.employee_count_impact is not None else "unknown"
    return (
        f"{label}:\n"
        f"- Company: {event.company_name}\n"
        f"- Type: {event.status_type.value}\n"
        f"- Description: {event.description}\n"
        f"- Date: {event.start_date.isoformat()}\n"
        f"- Employee Impact: {impact}\n"
    )


def parse_event_array(raw_text: str) -> list[dict[str, Any]]:
    """Decode a JSON array of events, tolerating code fences or surrounding prose."""
    candidate = _strip_code_fences(raw_text)
    try:
        if candidate.startswith("[") and candidate.endswith("]"):
            payload = json.loads(candidate)
        elif candidate.startswith("{") and candidate.endswith("}"):
            payload = json.loads(candidate).get("events")
        else:
            start = candidate.find("[")
            end = candidate.rfind("]")
            if start == -1 or end <= start:
                raise ClassifierValidationError("Response did not contain a JSON array.")
            payload = json.loads(candidate[start : end + 1])
    except (json.JSONDecodeError, AttributeError) as exc:
        raise ClassifierValidationError("Classifier response was not valid JSON.") from exc

    if not isinstance(payload, list):
        raise ClassifierValidationError("Classifier response must be a JSON array.")
    return [item for item in payload if isinstance(item, dict)]


def parse_boolean_verdict(raw_text: str) -> bool:
    """Only an exact ``true`` token counts as a match."""
    return (raw_text or "").strip().lower() == "true"


def _strip_code_fences(raw_text: str) -> str:
    candidate = (raw_text or "").strip()
    if candidate.startswith("```"):
        candidate = "\n".join(
            line for line in candidate.splitlines() if not line.strip().startswith("```")
        ).strip()
    return candidate


def build_classifier(config: Settings | None = None) -> LLMSemanticClassifier:
    """Create the production classifier, failing fast when credentials are missing."""
    config = config or settings
    if not config.classifier_api_key:
        raise IngestionConfigError("CLASSIFIER_API_KEY is not configured.")
    client = OpenAIChatClient(
        config.classifier_api_key,
        base_url=config.classifier_base_url,
        timeout=config.request_timeout_seconds,
    )
    return LLMSemanticClassifier(
        client,
        model=config.classifier_model,
        temperature=config.classifier_temperature,
    )
