"""Backend interface for LLM completions."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class CompletionRequest:
    """One prompt sent to a completion backend."""

    system_prompt: str
    user_prompt: str
    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    json_output: bool = False
    shutdown_requested: Callable[[], bool] | None = None


class LlmBackend(Protocol):
    """Protocol implemented by completion backends."""

    def complete(self, request: CompletionRequest) -> str:
        """Return raw completion text or raise ``CapabilityError``."""
