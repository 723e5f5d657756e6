"""Shared error classes for the event ingestion pipeline and repositories."""

from __future__ import annotations


class EventPipelineError(RuntimeError):
    """Base exception raised by the ingestion pipeline."""

    def __init__(self, message: str, code: str = "EVENT_PIPELINE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class IngestionConfigError(EventPipelineError):
    """Raised when a run cannot start because required configuration is missing."""

    def __init__(self, message: str, code: str = "E_CONFIG_MISSING") -> None:
        super().__init__(message, code=code)


class ClassifierError(EventPipelineError):
    """Raised when the semantic classifier call fails."""

    def __init__(self, message: str, code: str = "CLASSIFIER_ERROR") -> None:
        super().__init__(message, code=code)


class ClassifierTimeoutError(ClassifierError):
    def __init__(self, message: str = "Classifier request timed out") -> None:
        super().__init__(message, code="CLASSIFIER_TIMEOUT")


class ClassifierRateLimitError(ClassifierError):
    def __init__(self, message: str = "Rate limited by classifier provider") -> None:
        super().__init__(message, code="CLASSIFIER_429")


class ClassifierValidationError(ClassifierError):
    """Raised when a classifier response cannot be parsed safely."""

    def __init__(self, message: str = "Unexpected classifier response schema") -> None:
        super().__init__(message, code="CLASSIFIER_SCHEMA_ERR")


class EventExtractionError(EventPipelineError):
    """Raised when a source's text cannot be turned into event drafts."""


class EventPersistenceError(EventPipelineError):
    """Raised when the repository fails to save or retrieve events."""


class ConcurrentUpdateError(EventPersistenceError):
    """Raised when an update loses an optimistic version check."""

    def __init__(self, message: str = "Event was modified concurrently.") -> None:
        super().__init__(message, code="409_VERSION_CONFLICT")
