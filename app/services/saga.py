"""
Saga runner for multi-step HubSpot writes.

HubSpot has no transactions, so a sequence of writes is run as ordered steps,
each with an optional compensation. When a step fails, the compensations of
the steps that already completed run in reverse order and the original error
is re-raised. A failing compensation is logged and does not mask that error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[Any]]


@dataclass
class SagaStep:
    name: str
    action: Action
    # Receives the value returned by ``action``
    compensation: Optional[Compensation] = None


@dataclass
class Saga:
    name: str
    steps: list[SagaStep] = field(default_factory=list)
    results: dict[str, Any] = field(default_factory=dict)
    compensation_failures: list[str] = field(default_factory=list)

    def step(self, name: str, action: Action, compensation: Optional[Compensation] = None) -> "Saga":
        self.steps.append(SagaStep(name, action, compensation))
        return self

    async def run(self) -> dict[str, Any]:
        """Run every step in order; returns each step's result keyed by step name"""
        completed: list[tuple[SagaStep, Any]] = []

        for step in self.steps:
            try:
                result = await step.action()
            except Exception as e:
                logger.error(f"❌ Saga '{self.name}' failed at step '{step.name}': {e}")
                await self._compensate(completed)
                raise
            completed.append((step, result))
            self.results[step.name] = result
            logger.debug(f"✅ Saga '{self.name}' step '{step.name}' done")

        return self.results

    async def _compensate(self, completed: list[tuple[SagaStep, Any]]) -> None:
        for step, result in reversed(completed):
            if step.compensation is None:
                continue
            try:
                logger.info(f"🔄 Saga '{self.name}' compensating step '{step.name}'")
                await step.compensation(result)
            except Exception as e:
                self.compensation_failures.append(step.name)
                logger.error(
                    f"❌ Saga '{self.name}' compensation for '{step.name}' failed, "
                    f"manual correction needed: {e}"
                )
