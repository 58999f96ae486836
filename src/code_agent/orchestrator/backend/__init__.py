"""LLM backend implementations."""

from code_agent.orchestrator.backend.base import CompletionRequest, LlmBackend
from code_agent.orchestrator.backend.cli_backend import CliAgentBackend
from code_agent.orchestrator.backend.openai_backend import OpenAiBackend

__all__ = [
    "CliAgentBackend",
    "CompletionRequest",
    "LlmBackend",
    "OpenAiBackend",
]
