"""
Ordered multi-write workflows without a transaction.

A saga has one core step followed by advisory steps. The core step's failure
propagates to the caller. Advisory steps receive the core result, are retried
and logged individually, and their failures never undo earlier steps.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    name: str
    ok: bool
    attempts: int
    error: Optional[str] = None


@dataclass
class SagaReport:
    name: str
    core_result: Any = None
    outcomes: List[StepOutcome] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failed_steps(self) -> List[str]:
        return [o.name for o in self.outcomes if not o.ok]


class Saga:
    def __init__(self, name: str, retries: Optional[int] = None):
        self.name = name
        self.retries = settings.advisory_step_retries if retries is None else max(0, retries)
        self._core: Optional[tuple] = None
        self._advisory: List[tuple] = []

    def core(self, name: str, action: Callable[[], Any]) -> "Saga":
        self._core = (name, action)
        return self

    def advisory(self, name: str, action: Callable[[Any], Any]) -> "Saga":
        self._advisory.append((name, action))
        return self

    def run(self) -> SagaReport:
        if self._core is None:
            raise ValueError(f"Saga {self.name} has no core step")
        core_name, core_action = self._core
        report = SagaReport(name=self.name)
        report.core_result = core_action()
        report.outcomes.append(StepOutcome(name=core_name, ok=True, attempts=1))

        for step_name, action in self._advisory:
            report.outcomes.append(self._run_advisory(step_name, action, report.core_result))

        if not report.complete:
            logger.warning(f"{self.name} finished with failed advisory steps: {report.failed_steps}")
        return report

    def _run_advisory(self, name: str, action: Callable[[Any], Any], core_result: Any) -> StepOutcome:
        last_error = None
        for attempt in range(1, self.retries + 2):
            try:
                action(core_result)
                return StepOutcome(name=name, ok=True, attempts=attempt)
            except Exception as e:
                last_error = str(e)
                logger.error(f"{self.name}: step {name} failed (attempt {attempt}): {e}")
        return StepOutcome(name=name, ok=False, attempts=self.retries + 1, error=last_error)
