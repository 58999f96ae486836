"""Best-effort recovery of structured payloads from completion text."""

from __future__ import annotations

import json
import re

from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.models import GeneratedFile, PlanStep

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


def parse_json_object(text: str) -> dict[str, object] | None:
    """Parse a JSON object directly, from a fenced block, or from the outer brace slice."""

    text = text.strip()
    if not text:
        return None

    direct = _try_load_dict(text)
    if direct is not None:
        return direct

    fenced = _FENCED_JSON.search(text)
    if fenced is not None:
        payload = _try_load_dict(fenced.group(1))
        if payload is not None:
            return payload

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return _try_load_dict(text[start : end + 1])


def parse_generated_files(text: str) -> list[GeneratedFile]:
    """Accept ``{"files": [{path, content}]}`` or a flat ``{path: content}`` mapping."""

    payload = parse_json_object(text)
    if payload is None:
        raise CapabilityError("Code generation returned unparseable output")

    raw_files = payload.get("files")
    files: list[GeneratedFile] = []
    if isinstance(raw_files, list):
        try:
            files = [GeneratedFile.from_dict(item) for item in raw_files]
        except (TypeError, ValueError) as error:
            raise CapabilityError(f"Code generation returned malformed file entry: {error}") from error
    elif all(isinstance(value, str) for value in payload.values()):
        files = [
            GeneratedFile(path=path, content=content)
            for path, content in payload.items()
            if path.strip()
        ]

    if not files:
        raise CapabilityError("Code generation returned no files")
    return files


def parse_plan_steps(text: str) -> list[PlanStep]:
    """Validate a ``{"steps": [...]}`` payload and renumber steps by their order."""

    payload = parse_json_object(text)
    if payload is None:
        raise CapabilityError("Planning returned unparseable output")
    raw_steps = payload.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise CapabilityError("Planning returned no steps")

    parsed: list[tuple[int, int, PlanStep]] = []
    seen_ids: set[str] = set()
    for position, item in enumerate(raw_steps):
        if not isinstance(item, dict):
            raise CapabilityError("Plan step must be an object")
        step_id = item.get("id")
        description = item.get("description")
        order = item.get("order", position + 1)
        dependencies = item.get("dependencies") or []
        if not isinstance(step_id, str) or not step_id.strip():
            raise CapabilityError("Plan step id must be a non-empty string")
        if step_id in seen_ids:
            raise CapabilityError(f"Duplicate plan step id: {step_id}")
        if not isinstance(description, str) or not description.strip():
            raise CapabilityError(f"Plan step {step_id} has no description")
        if isinstance(order, bool) or not isinstance(order, int):
            raise CapabilityError(f"Plan step {step_id} order must be an integer")
        if not isinstance(dependencies, list) or not all(
            isinstance(dependency, str) for dependency in dependencies
        ):
            raise CapabilityError(f"Plan step {step_id} dependencies must be a list of ids")
        seen_ids.add(step_id)
        parsed.append(
            (
                order,
                position,
                PlanStep(
                    id=step_id,
                    description=description.strip(),
                    order=order,
                    dependencies=tuple(dependencies),
                ),
            ),
        )

    parsed.sort(key=lambda entry: (entry[0], entry[1]))
    steps = [entry[2] for entry in parsed]
    # order must equal position (1-based) after sorting
    for index, step in enumerate(steps, start=1):
        step.order = index
    return steps


def _try_load_dict(raw: str) -> dict[str, object] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
