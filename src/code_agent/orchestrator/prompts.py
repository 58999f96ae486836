"""Prompt templates for code, plan and commit-message generation."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence

CODE_SYSTEM_PROMPT = """\
You are an expert software developer. Your task is to generate complete, production-ready code.

Guidelines:
- Generate clean, modern, and well-structured code
- Include all necessary files
- Keep file paths relative to the repository root
- Return code as a JSON object of the form {"files": [{"path": "...", "content": "..."}]}

Example format:
{
  "files": [
    {"path": "index.html", "content": "<!DOCTYPE html>..."},
    {"path": "styles.css", "content": "body { ... }"}
  ]
}"""

PLAN_SYSTEM_PROMPT = """\
You are a senior engineer planning implementation work. Break the task into a short,
ordered list of independently committable steps.

Return a JSON object with a "steps" array. Each step has:
- "id": unique string such as "step-1"
- "description": what to build in this step
- "order": integer starting at 1
- "dependencies": list of step ids that must be finished first (may be empty)

Use a single step when the task is small."""

COMMIT_SYSTEM_PROMPT = (
    "You are a git expert. Generate concise, clear commit messages following "
    "conventional commit format."
)

PLAN_REQUEST_MARKER = "Plan the implementation steps."
COMMIT_REQUEST_MARKER = "Generate a commit message."


def build_code_prompt(
    description: str,
    *,
    existing_files: Mapping[str, str] | None = None,
    requirements: str | None = None,
) -> str:
    """Compose the user prompt; empty context sections are left out entirely."""

    sections = [f"Task: {description}"]
    if existing_files:
        rendered = json.dumps(dict(existing_files), ensure_ascii=False, indent=2)
        sections.append(f"Existing files in project:\n{rendered}")
    if requirements:
        sections.append(f"Additional requirements:\n{requirements}")
    sections.append("Generate the complete code structure needed to accomplish this task.")
    return "\n\n".join(sections)


def build_step_description(overall_description: str, step_description: str) -> str:
    return f"{overall_description}\n\nCurrent step: {step_description}"


def build_plan_prompt(description: str) -> str:
    return f"Task: {description}\n\n{PLAN_REQUEST_MARKER}"


def build_commit_prompt(description: str, paths: Sequence[str]) -> str:
    return f"Task: {description}\n\nFiles changed: {', '.join(paths)}\n\n{COMMIT_REQUEST_MARKER}"
