"""Client for the Firecrawl scrape API (page to markdown)."""

from __future__ import annotations

from typing import Any

import httpx


class PageFetchError(RuntimeError):
    """Base error for page fetch failures."""

    def __init__(self, message: str, code: str = "FETCH_ERROR") -> None:
        super().__init__(message)
        self.code = code


class FirecrawlRateLimitError(PageFetchError):
    """Raised when Firecrawl responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Firecrawl") -> None:
        super().__init__(message, code="FIRECRAWL_429")


class FirecrawlTimeoutError(PageFetchError):
    """Raised when a Firecrawl request times out."""

    def __init__(self, message: str = "Firecrawl request timed out") -> None:
        super().__init__(message, code="FIRECRAWL_TIMEOUT")


class FirecrawlSchemaError(PageFetchError):
    """Raised when the Firecrawl response does not carry markdown content."""

    def __init__(self, message: str = "Unexpected Firecrawl response schema") -> None:
        super().__init__(message, code="FIRECRAWL_SCHEMA_ERR")


class FirecrawlClient:
    """Minimal Firecrawl API client wrapper."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("FIRECRAWL_API_KEY is required to create a FirecrawlClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def fetch(self, target: str) -> str:
        """Scrape ``target`` and return its main content as markdown."""
        payload: dict[str, Any] = {
            "url": target,
            "formats": ["markdown"],
            "onlyMainContent": True,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = self._http.post("/v1/scrape", json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise FirecrawlTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise PageFetchError(f"HTTP error calling Firecrawl: {exc}") from exc

        if response.status_code == 429:
            raise FirecrawlRateLimitError()
        if response.status_code in (408, 504):
            raise FirecrawlTimeoutError()
        if response.status_code >= 400:
            raise PageFetchError(
                f"Firecrawl request failed: {response.status_code} - {response.text[:200]}",
                code=f"FIRECRAWL_{response.status_code}",
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise FirecrawlSchemaError("Failed to decode Firecrawl response JSON.") from exc

        body = data.get("data") if isinstance(data, dict) else None
        content = body.get("markdown") if isinstance(body, dict) else None
        if not isinstance(content, str):
            raise FirecrawlSchemaError("`data.markdown` missing from Firecrawl response.")
        if not content.strip():
            raise PageFetchError(f"Firecrawl returned empty content for {target}", code="FETCH_EMPTY")
        return content

    def __enter__(self) -> "FirecrawlClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
