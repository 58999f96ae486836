"""Runtime configuration for queue, LLM backends, version control and worker."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

SUPPORTED_LLM_BACKENDS = ("openai", "cli")

DEFAULT_CLI_COMMAND_TEMPLATE = "codex exec --sandbox read-only --model {model} {prompt}"


@dataclass(slots=True)
class LlmSettings:
    """Code-generation capability settings."""

    backend: str = "openai"
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    code_model: str = "gpt-4o-2024-08-06"
    plan_model: str = "gpt-4o-2024-08-06"
    commit_model: str = "gpt-4o-mini"
    code_temperature: float = 0.7
    commit_temperature: float = 0.3
    commit_max_tokens: int = 100
    request_timeout_seconds: float = 600.0
    cli_command_template: str = DEFAULT_CLI_COMMAND_TEMPLATE
    workdir_root: Path = Path(".code_agent/llm")


@dataclass(slots=True)
class GitHubSettings:
    """Version-control capability settings."""

    token: str = ""
    owner: str = ""
    repo: str = ""
    api_url: str = "https://api.github.com"
    max_retries: int = 3
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class McpSettings:
    """Optional MCP server used ahead of the GitHub REST API."""

    server_url: str = "http://localhost:3000"
    enabled: bool = False


@dataclass(slots=True)
class WorkerSettings:
    """Queue worker loop settings."""

    poll_interval_seconds: float = 30.0
    graceful_shutdown_seconds: int = 10
    stats_interval_seconds: float = 60.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    queue_file: Path = Path("data/tasks.json")
    queue_lock_timeout_seconds: float = 30.0
    workspace_root: Path = Path("workspace")
    log_level: str = "INFO"
    llm: LlmSettings = field(default_factory=LlmSettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    mcp: McpSettings = field(default_factory=McpSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)

    @classmethod
    def from_env(cls, queue_file: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            queue_file=queue_file or Path(os.getenv("CODE_AGENT_QUEUE_FILE", "data/tasks.json")),
            queue_lock_timeout_seconds=float(
                os.getenv("CODE_AGENT_QUEUE_LOCK_TIMEOUT_SECONDS", "30"),
            ),
            workspace_root=Path(
                os.getenv("CODE_AGENT_WORKSPACE", os.getenv("PROJECT_WORKSPACE", "workspace")),
            ),
            log_level=os.getenv("CODE_AGENT_LOG_LEVEL", "INFO").strip().upper(),
            llm=LlmSettings(
                backend=os.getenv("CODE_AGENT_LLM_BACKEND", "openai").strip().lower(),
                api_key=os.getenv("CODE_AGENT_OPENAI_API_KEY", os.getenv("OPENAI_API_KEY", "")),
                base_url=os.getenv("CODE_AGENT_OPENAI_BASE_URL", "https://api.openai.com/v1"),
                code_model=os.getenv("CODE_AGENT_LLM_CODE_MODEL", "gpt-4o-2024-08-06"),
                plan_model=os.getenv("CODE_AGENT_LLM_PLAN_MODEL", "gpt-4o-2024-08-06"),
                commit_model=os.getenv("CODE_AGENT_LLM_COMMIT_MODEL", "gpt-4o-mini"),
                code_temperature=float(os.getenv("CODE_AGENT_LLM_CODE_TEMPERATURE", "0.7")),
                commit_temperature=float(os.getenv("CODE_AGENT_LLM_COMMIT_TEMPERATURE", "0.3")),
                commit_max_tokens=int(os.getenv("CODE_AGENT_LLM_COMMIT_MAX_TOKENS", "100")),
                request_timeout_seconds=float(os.getenv("CODE_AGENT_LLM_TIMEOUT_SECONDS", "600")),
                cli_command_template=os.getenv(
                    "CODE_AGENT_LLM_CLI_COMMAND_TEMPLATE",
                    DEFAULT_CLI_COMMAND_TEMPLATE,
                ),
                workdir_root=Path(os.getenv("CODE_AGENT_LLM_WORKDIR_ROOT", ".code_agent/llm")),
            ),
            github=GitHubSettings(
                token=os.getenv("CODE_AGENT_GITHUB_TOKEN", os.getenv("GITHUB_TOKEN", "")),
                owner=os.getenv("CODE_AGENT_GITHUB_OWNER", os.getenv("GITHUB_OWNER", "")),
                repo=os.getenv("CODE_AGENT_GITHUB_REPO", os.getenv("GITHUB_REPO", "")),
                api_url=os.getenv("CODE_AGENT_GITHUB_API_URL", "https://api.github.com"),
                max_retries=int(os.getenv("CODE_AGENT_GITHUB_MAX_RETRIES", "3")),
                request_timeout_seconds=float(
                    os.getenv("CODE_AGENT_GITHUB_TIMEOUT_SECONDS", "30"),
                ),
            ),
            mcp=McpSettings(
                server_url=os.getenv("CODE_AGENT_MCP_SERVER_URL", "http://localhost:3000"),
                enabled=_env_bool(
                    "CODE_AGENT_USE_MCP_SERVER",
                    default=_env_bool("USE_MCP_SERVER", default=False),
                ),
            ),
            worker=WorkerSettings(
                poll_interval_seconds=float(
                    os.getenv("CODE_AGENT_WORKER_POLL_INTERVAL_SECONDS", "30"),
                ),
                graceful_shutdown_seconds=int(
                    os.getenv("CODE_AGENT_WORKER_GRACEFUL_SHUTDOWN_SECONDS", "10"),
                ),
                stats_interval_seconds=float(
                    os.getenv("CODE_AGENT_WORKER_STATS_INTERVAL_SECONDS", "60"),
                ),
            ),
        )

    def validate_for_worker(self) -> None:
        """Raise configuration error if task processing cannot be wired up."""

        missing = [
            name
            for name, value in (
                ("CODE_AGENT_GITHUB_TOKEN", self.github.token),
                ("CODE_AGENT_GITHUB_OWNER", self.github.owner),
                ("CODE_AGENT_GITHUB_REPO", self.github.repo),
            )
            if not value.strip()
        ]
        if self.llm.backend not in SUPPORTED_LLM_BACKENDS:
            raise ValueError(
                f"Unsupported CODE_AGENT_LLM_BACKEND: {self.llm.backend!r}. "
                f"Expected one of: {', '.join(SUPPORTED_LLM_BACKENDS)}.",
            )
        if self.llm.backend == "openai" and not self.llm.api_key.strip():
            missing.append("CODE_AGENT_OPENAI_API_KEY")
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        if self.llm.backend == "cli":
            template = self.llm.cli_command_template
            if "{prompt}" not in template and "{prompt_file}" not in template:
                raise ValueError(
                    "CODE_AGENT_LLM_CLI_COMMAND_TEMPLATE must include {prompt} or {prompt_file}.",
                )
        _validate_http_url("CODE_AGENT_GITHUB_API_URL", self.github.api_url)
        if self.mcp.enabled:
            _validate_http_url("CODE_AGENT_MCP_SERVER_URL", self.mcp.server_url)
        if self.worker.poll_interval_seconds <= 0:
            raise ValueError("CODE_AGENT_WORKER_POLL_INTERVAL_SECONDS must be > 0.")
        if self.worker.graceful_shutdown_seconds < 0:
            raise ValueError("CODE_AGENT_WORKER_GRACEFUL_SHUTDOWN_SECONDS must be >= 0.")


def _validate_http_url(name: str, value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
