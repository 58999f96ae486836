"""Wiring of settings into backends, version control, task manager and worker."""

from __future__ import annotations

from collections.abc import Callable

from code_agent.config import Settings
from code_agent.orchestrator.backend import CliAgentBackend, LlmBackend, OpenAiBackend
from code_agent.orchestrator.codegen import CodeGenerator
from code_agent.orchestrator.commit_messages import (
    FallbackCommitMessageWriter,
    LlmCommitMessageWriter,
)
from code_agent.orchestrator.manager import TaskManager
from code_agent.orchestrator.planner import FallbackPlanner, LlmPlanner
from code_agent.orchestrator.repository import TaskQueueRepository
from code_agent.orchestrator.worker import AgentWorker
from code_agent.orchestrator.workspace import BranchWorkspace
from code_agent.vcs import FallbackVersionControl, GitHubRestClient, McpGitHubClient
from code_agent.vcs.base import VersionControl


def build_repository(settings: Settings) -> TaskQueueRepository:
    repository = TaskQueueRepository(
        settings.queue_file,
        lock_timeout_seconds=settings.queue_lock_timeout_seconds,
    )
    repository.init_store()
    return repository


def build_backend(settings: Settings) -> LlmBackend:
    if settings.llm.backend == "cli":
        return CliAgentBackend(
            command_template=settings.llm.cli_command_template,
            workdir_root=settings.llm.workdir_root,
            timeout_seconds=settings.llm.request_timeout_seconds,
            graceful_shutdown_seconds=settings.worker.graceful_shutdown_seconds,
        )
    return OpenAiBackend(
        api_key=settings.llm.api_key,
        base_url=settings.llm.base_url,
        timeout_seconds=settings.llm.request_timeout_seconds,
    )


def build_version_control(settings: Settings) -> VersionControl:
    rest = GitHubRestClient(settings.github)
    if not settings.mcp.enabled:
        return rest
    return FallbackVersionControl(
        primary=McpGitHubClient(
            settings.mcp.server_url,
            timeout_seconds=settings.github.request_timeout_seconds,
        ),
        fallback=rest,
    )


def build_task_manager(
    settings: Settings,
    *,
    backend: LlmBackend | None = None,
    version_control: VersionControl | None = None,
    shutdown_requested: Callable[[], bool] | None = None,
) -> TaskManager:
    generator = CodeGenerator(
        backend or build_backend(settings),
        settings.llm,
        shutdown_requested=shutdown_requested,
    )
    return TaskManager(
        version_control=version_control or build_version_control(settings),
        generator=generator,
        planner=FallbackPlanner(LlmPlanner(generator)),
        commit_writer=FallbackCommitMessageWriter(LlmCommitMessageWriter(generator)),
        workspace=BranchWorkspace(settings.workspace_root),
    )


def build_worker(
    settings: Settings,
    *,
    repository: TaskQueueRepository | None = None,
    backend: LlmBackend | None = None,
    version_control: VersionControl | None = None,
) -> AgentWorker:
    """Worker whose task manager and CLI agent calls honor the worker's stop request."""

    manager = build_task_manager(settings, backend=backend, version_control=version_control)
    worker = AgentWorker(
        repository=repository or build_repository(settings),
        manager=manager,
        poll_interval_seconds=settings.worker.poll_interval_seconds,
        stats_interval_seconds=settings.worker.stats_interval_seconds,
    )
    manager.generator.shutdown_requested = lambda: worker.stop_requested
    manager.stop_requested_at = lambda: worker.stop_requested_at
    manager.graceful_shutdown_seconds = settings.worker.graceful_shutdown_seconds
    return worker
