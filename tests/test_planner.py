from __future__ import annotations

import allure
import pytest

from code_agent.orchestrator.codegen import CodeGenerator
from code_agent.orchestrator.errors import CapabilityError
from code_agent.orchestrator.models import Plan, PlanStep, StepStatus
from code_agent.orchestrator.planner import FallbackPlanner, LlmPlanner, SingleStepPlanner
from conftest import ScriptedBackend, plan_json

pytestmark = [
    allure.epic("Task Orchestration"),
    allure.feature("Planning"),
]

DESCRIPTION = "Create a landing page with a contact form"


def _planner(backend: ScriptedBackend) -> FallbackPlanner:
    return FallbackPlanner(LlmPlanner(CodeGenerator(backend)))


def test_llm_plan_is_sorted_renumbered_and_pending(backend: ScriptedBackend) -> None:
    backend.plan = lambda request: plan_json(
        {"id": "form", "description": "Add contact form", "order": 5, "dependencies": ["page"]},
        {"id": "page", "description": "Create page layout", "order": 2},
    )

    plan = _planner(backend).generate_plan(DESCRIPTION)

    assert [step.id for step in plan.steps] == ["page", "form"]
    assert [step.order for step in plan.steps] == [1, 2]
    assert plan.steps[1].dependencies == ("page",)
    assert all(step.status == StepStatus.PENDING for step in plan.steps)
    assert plan.current_step_index == 0
    assert plan.is_multi_step


def test_plan_request_carries_description(backend: ScriptedBackend) -> None:
    _planner(backend).generate_plan(DESCRIPTION)

    (request,) = backend.requests_of_kind("plan")
    assert DESCRIPTION in request.user_prompt
    assert request.json_output is True


def test_fenced_plan_output_is_accepted(backend: ScriptedBackend) -> None:
    backend.plan = lambda request: (
        "Here is the plan:\n```json\n"
        + plan_json(
            {"id": "a", "description": "A", "order": 1},
            {"id": "b", "description": "B", "order": 2, "dependencies": ["a"]},
        )
        + "\n```"
    )

    plan = _planner(backend).generate_plan(DESCRIPTION)

    assert [step.id for step in plan.steps] == ["a", "b"]


def _raise_unreachable(request):
    raise CapabilityError("connection refused", transient=True)


@pytest.mark.parametrize(
    "handler",
    [
        _raise_unreachable,
        lambda request: "I cannot plan this.",
        lambda request: '{"steps": []}',
        lambda request: plan_json(
            {"id": "a", "description": "A", "order": 1},
            {"id": "a", "description": "again", "order": 2},
        ),
        lambda request: plan_json({"id": "a", "description": "", "order": 1}),
        lambda request: plan_json({"id": "a", "description": "A", "order": "first"}),
    ],
    ids=["unreachable", "prose", "empty", "duplicate-ids", "blank-description", "bad-order"],
)
def test_planning_failure_falls_back_to_single_step(backend: ScriptedBackend, handler) -> None:
    backend.plan = handler

    plan = _planner(backend).generate_plan(DESCRIPTION)

    assert len(plan.steps) == 1
    assert plan.steps[0].description == DESCRIPTION
    assert plan.steps[0].order == 1
    assert plan.steps[0].dependencies == ()
    assert not plan.is_multi_step


def test_single_step_planner_wraps_description_verbatim() -> None:
    description = "  Keep   spacing\nand newlines  "

    plan = SingleStepPlanner().generate_plan(description)

    assert plan.steps == [PlanStep(id="step-1", description=description, order=1)]


def test_fallback_planner_does_not_swallow_programming_errors() -> None:
    class Broken:
        def generate_plan(self, description: str) -> Plan:
            raise KeyError(description)

    with pytest.raises(KeyError):
        FallbackPlanner(Broken()).generate_plan(DESCRIPTION)


def test_unmet_dependencies_reports_missing_and_incomplete_steps() -> None:
    plan = Plan(
        steps=[
            PlanStep(id="a", description="A", order=1, status=StepStatus.COMPLETED),
            PlanStep(id="b", description="B", order=2, status=StepStatus.FAILED),
            PlanStep(id="c", description="C", order=3, dependencies=("a", "b", "zzz")),
        ],
    )

    assert plan.unmet_dependencies(plan.steps[2]) == ("b", "zzz")
    assert plan.unmet_dependencies(plan.steps[0]) == ()
