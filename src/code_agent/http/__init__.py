"""Shared HTTP plumbing for external API integrations."""

from code_agent.http.client import JsonHttpClient, JsonResponse

__all__ = ["JsonHttpClient", "JsonResponse"]
