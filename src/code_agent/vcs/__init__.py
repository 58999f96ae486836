"""Version-control capability: GitHub REST, MCP server, and MCP-first fallback."""

from code_agent.vcs.base import MergeResult, ReviewComment, ReviewComments, VersionControl
from code_agent.vcs.fallback import FallbackVersionControl
from code_agent.vcs.github import GitHubRestClient
from code_agent.vcs.mcp import McpGitHubClient

__all__ = [
    "FallbackVersionControl",
    "GitHubRestClient",
    "McpGitHubClient",
    "MergeResult",
    "ReviewComment",
    "ReviewComments",
    "VersionControl",
]
