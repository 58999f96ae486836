"""Subprocess-based completion backend for CLI agents."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
import uuid
from pathlib import Path

from code_agent.orchestrator.backend.base import CompletionRequest
from code_agent.orchestrator.errors import CapabilityError

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124


class CliAgentBackend:
    """Render a command template, run the agent, and treat its stdout as the completion.

    Supported placeholders are ``{prompt}``, ``{prompt_file}`` and ``{model}``.
    Every call gets its own directory under ``workdir_root`` holding the prompt
    file and the captured stdout/stderr logs.
    """

    def __init__(
        self,
        *,
        command_template: str,
        workdir_root: Path,
        timeout_seconds: float = 600.0,
        graceful_shutdown_seconds: int = 10,
    ) -> None:
        self.command_template = command_template
        self.workdir_root = workdir_root
        self.timeout_seconds = timeout_seconds
        self.graceful_shutdown_seconds = graceful_shutdown_seconds

    def complete(self, request: CompletionRequest) -> str:
        workdir = self.workdir_root / f"call-{uuid.uuid4().hex[:12]}"
        workdir.mkdir(parents=True, exist_ok=True)
        prompt = _build_cli_prompt(request)
        prompt_file = workdir / "prompt.txt"
        prompt_file.write_text(prompt, "utf-8")
        stdout_path = workdir / "stdout.log"
        stderr_path = workdir / "stderr.log"

        run_args = _build_run_args(
            command_template=self.command_template,
            model=request.model,
            prompt=prompt,
            prompt_file=prompt_file,
        )
        env = os.environ.copy()
        env["CODE_AGENT_LLM_MODEL"] = request.model
        env["CODE_AGENT_JSON_OUTPUT"] = "1" if request.json_output else "0"

        try:
            with (
                stdout_path.open("w", encoding="utf-8") as stdout_handle,
                stderr_path.open("w", encoding="utf-8") as stderr_handle,
            ):
                exit_code = _run_subprocess_with_shutdown(
                    run_args=run_args,
                    env=env,
                    timeout_seconds=self.timeout_seconds,
                    stdout_handle=stdout_handle,
                    stderr_handle=stderr_handle,
                    shutdown_requested=request.shutdown_requested,
                    graceful_shutdown_seconds=self.graceful_shutdown_seconds,
                )
        except FileNotFoundError as error:
            raise CapabilityError(
                f"CLI backend command not found: {run_args[0]}",
                transient=False,
            ) from error
        except OSError as error:
            raise CapabilityError(
                f"CLI backend failed to start: {error}",
                transient=True,
            ) from error

        if exit_code == TIMEOUT_EXIT_CODE:
            raise CapabilityError(
                f"CLI backend timed out after {self.timeout_seconds}s",
                transient=True,
            )
        if exit_code != 0:
            stderr_tail = stderr_path.read_text("utf-8", errors="replace")[-500:].strip()
            raise CapabilityError(
                f"CLI backend exited with code {exit_code}: {stderr_tail or 'no stderr'}",
                transient=exit_code in (137, 143),
            )
        try:
            output = stdout_path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as error:
            raise CapabilityError(f"CLI backend output is not valid UTF-8: {error}") from error
        logger.debug("CLI completion received: workdir=%s chars=%d", workdir, len(output))
        return output


def _build_cli_prompt(request: CompletionRequest) -> str:
    sections = [request.system_prompt.strip(), request.user_prompt.strip()]
    if request.json_output:
        sections.append("Respond with a single JSON object and nothing else.")
    return "\n\n".join(section for section in sections if section) + "\n"


def _build_run_args(
    *,
    command_template: str,
    model: str,
    prompt: str,
    prompt_file: Path,
) -> list[str]:
    stripped = command_template.strip()
    if not stripped:
        raise CapabilityError("CLI backend command template is empty.")
    if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
        raise CapabilityError("CLI backend command template must include {prompt} or {prompt_file}.")
    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
        )
    except (KeyError, IndexError) as error:
        raise CapabilityError(f"Unsupported command template placeholder: {error}") from error

    argv = shlex.split(rendered)
    if not argv:
        raise CapabilityError("CLI backend command template rendered empty command.")
    return argv


def _run_subprocess_with_shutdown(  # noqa: PLR0913
    *,
    run_args: list[str],
    env: dict[str, str],
    timeout_seconds: float,
    stdout_handle,
    stderr_handle,
    shutdown_requested,
    graceful_shutdown_seconds: int,
) -> int:
    process = subprocess.Popen(  # noqa: S603
        run_args,
        env=env,
        stdout=stdout_handle,
        stderr=stderr_handle,
        text=True,
    )
    started = time.monotonic()
    shutdown_deadline: float | None = None

    while True:
        returncode = process.poll()
        if returncode is not None:
            return returncode

        now = time.monotonic()
        if now - started >= timeout_seconds:
            _terminate_process(process)
            return TIMEOUT_EXIT_CODE

        if shutdown_requested is not None and shutdown_requested():
            if shutdown_deadline is None:
                shutdown_deadline = now + max(0, graceful_shutdown_seconds)
                logger.info("Shutdown requested, waiting up to %ss for agent", graceful_shutdown_seconds)
            if now >= shutdown_deadline:
                _terminate_process(process)
                return TIMEOUT_EXIT_CODE

        time.sleep(0.1)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
