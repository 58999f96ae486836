"""OpenAI-compatible chat completions backend."""

from __future__ import annotations

import logging

import httpx

from code_agent.http.client import JsonHttpClient
from code_agent.orchestrator.backend.base import CompletionRequest
from code_agent.orchestrator.errors import CapabilityError

logger = logging.getLogger(__name__)


class OpenAiBackend:
    """Send prompts to ``{base_url}/chat/completions`` and return the first choice."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 600.0,
        max_retries: int = 2,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = JsonHttpClient(
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def complete(self, request: CompletionRequest) -> str:
        body: dict[str, object] = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if request.json_output:
            body["response_format"] = {"type": "json_object"}

        response = self._client.request("POST", "/chat/completions", json_body=body)
        if not response.is_success:
            raise CapabilityError(
                f"Completion request failed: {response.error}",
                transient=response.is_transient,
            )
        content = _first_choice_content(response.payload)
        if content is None:
            raise CapabilityError("No response content from completion backend")
        logger.debug("Completion received: model=%s chars=%d", request.model, len(content))
        return content

    def close(self) -> None:
        self._client.close()


def _first_choice_content(payload: object) -> str | None:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, str):
        return None
    return content
