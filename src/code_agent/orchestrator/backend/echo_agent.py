"""Local demo agent for CLI backend integration tests."""

from __future__ import annotations

import argparse
import json
import re
import sys
from pathlib import Path

from code_agent.orchestrator.prompts import COMMIT_REQUEST_MARKER, PLAN_REQUEST_MARKER

_TASK_LINE = re.compile(r"^Task: (?P<task>.+)$", re.MULTILINE)
_STEP_LINE = re.compile(r"^Current step: (?P<step>.+)$", re.MULTILINE)


def main(argv: list[str] | None = None) -> int:
    """Print a deterministic completion for the prompt in ``--prompt-file``."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--prompt-file", required=True)
    args = parser.parse_args(argv)

    prompt = Path(args.prompt_file).read_text("utf-8")
    task_match = _TASK_LINE.search(prompt)
    task = task_match.group("task").strip() if task_match else "demo task"

    if COMMIT_REQUEST_MARKER in prompt:
        sys.stdout.write(f"feat: {task}\n")
        return 0
    if PLAN_REQUEST_MARKER in prompt:
        payload = {"steps": [{"id": "step-1", "description": task, "order": 1}]}
        sys.stdout.write(json.dumps(payload) + "\n")
        return 0

    step_match = _STEP_LINE.search(prompt)
    heading = step_match.group("step").strip() if step_match else task
    payload = {
        "files": [
            {
                "path": "index.html",
                "content": f"<!DOCTYPE html>\n<html><body><h1>{heading}</h1></body></html>\n",
            },
        ],
    }
    sys.stdout.write(json.dumps(payload) + "\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
