"""Task decomposition into ordered, dependency-gated plans."""

from __future__ import annotations

import logging
from typing import Protocol

from code_agent.orchestrator.codegen import CodeGenerator
from code_agent.orchestrator.fallback import call_with_fallback
from code_agent.orchestrator.models import Plan, PlanStep

logger = logging.getLogger(__name__)


class Planner(Protocol):
    def generate_plan(self, description: str) -> Plan:
        """Return a fresh plan with every step pending and the cursor at zero."""


class LlmPlanner:
    """Ask the code generator for a structured step list."""

    def __init__(self, generator: CodeGenerator) -> None:
        self.generator = generator

    def generate_plan(self, description: str) -> Plan:
        steps = self.generator.generate_plan_steps(description)
        logger.info("Plan generated: steps=%d", len(steps))
        return Plan(steps=steps)


class SingleStepPlanner:
    """One step wrapping the whole description verbatim."""

    def generate_plan(self, description: str) -> Plan:
        return Plan(steps=[PlanStep(id="step-1", description=description, order=1)])


class FallbackPlanner:
    """Use ``primary`` and fall back to ``fallback`` when planning fails."""

    def __init__(self, primary: Planner, fallback: Planner | None = None) -> None:
        self.primary = primary
        self.fallback = fallback or SingleStepPlanner()

    def generate_plan(self, description: str) -> Plan:
        return call_with_fallback(
            lambda: self.primary.generate_plan(description),
            lambda: self.fallback.generate_plan(description),
            operation="Plan generation",
        )
