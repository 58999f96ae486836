from __future__ import annotations

import allure
import pytest

from code_agent.config import LlmSettings
from code_agent.orchestrator.codegen import CodeGenerator
from code_agent.orchestrator.commit_messages import (
    FallbackCommitMessageWriter,
    LlmCommitMessageWriter,
    TemplateCommitMessageWriter,
)
from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.models import GeneratedFile
from code_agent.orchestrator.output_parsing import parse_generated_files, parse_json_object
from code_agent.orchestrator.prompts import build_code_prompt, build_step_description
from conftest import ScriptedBackend, files_json

pytestmark = [
    allure.epic("Task Orchestration"),
    allure.feature("Code Generation Capability"),
]

FILES = [GeneratedFile(path="index.html", content="<p>hi</p>")]


def test_code_prompt_omits_absent_context_sections() -> None:
    prompt = build_code_prompt("Build a page", existing_files={}, requirements=None)

    assert prompt.startswith("Task: Build a page")
    assert "Existing files" not in prompt
    assert "Additional requirements" not in prompt
    assert "\n\n\n" not in prompt


def test_code_prompt_includes_context_verbatim() -> None:
    prompt = build_code_prompt(
        "Build a page",
        existing_files={"style.css": "body { color: red; }"},
        requirements="Use semantic HTML\nNo frameworks",
    )

    assert "Existing files in project:" in prompt
    assert '"style.css": "body { color: red; }"' in prompt
    assert "Additional requirements:\nUse semantic HTML\nNo frameworks" in prompt


def test_step_description_combines_overall_and_step() -> None:
    assert build_step_description("Site", "Add footer") == "Site\n\nCurrent step: Add footer"


def test_parse_generated_files_accepts_files_array_and_flat_mapping() -> None:
    from_array = parse_generated_files(files_json({"a.html": "A", "css/b.css": "B"}))
    from_mapping = parse_generated_files('{"index.html": "<p>x</p>", "app.js": "run()"}')

    assert [item.path for item in from_array] == ["a.html", "css/b.css"]
    assert from_mapping == [
        GeneratedFile(path="index.html", content="<p>x</p>"),
        GeneratedFile(path="app.js", content="run()"),
    ]


def test_parse_json_object_recovers_from_surrounding_prose() -> None:
    text = 'Sure! Here you go: {"files": []} Hope that helps.'

    assert parse_json_object(text) == {"files": []}
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object("   ") is None


@pytest.mark.parametrize(
    "text",
    [
        "no json here",
        '{"files": []}',
        '{"files": [{"path": "", "content": "x"}]}',
        '{"files": [{"path": "a.txt", "content": 3}]}',
        '{"count": 3}',
    ],
    ids=["prose", "empty-files", "blank-path", "non-string-content", "no-files"],
)
def test_parse_generated_files_rejects_unusable_output(text: str) -> None:
    with pytest.raises(CapabilityError):
        parse_generated_files(text)


def test_generate_code_uses_code_model_and_wraps_failures(backend: ScriptedBackend) -> None:
    generator = CodeGenerator(backend, LlmSettings(code_model="coder-1", code_temperature=0.2))

    files = generator.generate_code("Build", requirements="fast")

    (request,) = backend.requests_of_kind("code")
    assert request.model == "coder-1"
    assert request.temperature == 0.2
    assert "Additional requirements:\nfast" in request.user_prompt
    assert [item.path for item in files] == ["index.html"]

    backend.code = lambda request: "garbage"
    with pytest.raises(CapabilityError, match="Failed to generate code"):
        generator.generate_code("Build")


def test_commit_message_from_capability_is_trimmed(backend: ScriptedBackend) -> None:
    backend.commit = lambda request: "  feat: add landing page \n"
    writer = FallbackCommitMessageWriter(LlmCommitMessageWriter(CodeGenerator(backend)))

    assert writer.write("Landing page", FILES) == "feat: add landing page"
    (request,) = backend.requests_of_kind("commit")
    assert "Files changed: index.html" in request.user_prompt
    assert request.max_tokens == 100


def _raise_capability(request):
    raise CapabilityError("rate limited", transient=True)


@pytest.mark.parametrize(
    "handler",
    [_raise_capability, lambda request: "   "],
    ids=["failure", "empty"],
)
def test_commit_message_falls_back_to_template(backend: ScriptedBackend, handler) -> None:
    backend.commit = handler
    writer = FallbackCommitMessageWriter(LlmCommitMessageWriter(CodeGenerator(backend)))

    assert writer.write("Create a simple hello world HTML page", FILES) == (
        "feat: Create a simple hello world HTML page"
    )


def test_template_writer_is_deterministic() -> None:
    writer = TemplateCommitMessageWriter()

    assert writer.write("x", FILES) == writer.write("x", []) == "feat: x"
