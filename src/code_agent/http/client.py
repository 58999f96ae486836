"""JSON HTTP client with retries and timeout shared by API integrations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = "code-agent/1.0"


@dataclass(slots=True)
class JsonResponse:
    """Result of one JSON API call."""

    method: str
    url: str
    status_code: int
    payload: Any
    is_success: bool
    error: str | None = None

    @property
    def is_transient(self) -> bool:
        """Connection-level failures, throttling and server errors may succeed later."""

        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


class JsonHttpClient:
    """httpx wrapper with base URL, retrying transport and structured results."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = httpx.Timeout(timeout_seconds, connect=10.0)
        base_headers = {"User-Agent": user_agent, "Accept": "application/json"}
        if headers:
            base_headers.update(headers)
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=self._timeout,
            headers=base_headers,
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            follow_redirects=True,
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> JsonResponse:
        """Send a request and decode the JSON body, never raising on HTTP errors."""

        try:
            response = self._client.request(method, path, json=json_body, params=params)
        except httpx.TimeoutException:
            logger.warning("Timeout calling %s %s", method, path)
            return JsonResponse(
                method=method,
                url=path,
                status_code=0,
                payload=None,
                is_success=False,
                error="timeout",
            )
        except httpx.HTTPError as exc:
            logger.warning("HTTP error calling %s %s: %s", method, path, exc)
            return JsonResponse(
                method=method,
                url=path,
                status_code=0,
                payload=None,
                is_success=False,
                error=str(exc),
            )

        payload = _decode_json(response)
        error = None
        if not response.is_success:
            error = f"HTTP {response.status_code}"
            message = payload.get("message") if isinstance(payload, dict) else None
            if isinstance(message, str) and message:
                error = f"{error}: {message}"
        return JsonResponse(
            method=method,
            url=str(response.request.url),
            status_code=response.status_code,
            payload=payload,
            is_success=response.is_success,
            error=error,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> JsonHttpClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _decode_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
