"""
Workflow Engine — runs an IntentPlan step by step.

States (per run):
  PENDING → RUNNING (once per step) → COMPLETED | ABORTED

Behavioral Contract:
- Steps run strictly sequentially in ascending `order` (stable on ties)
- The first failed step aborts the run; later steps never execute
- `delay_ms` is applied after a successful step, before the next one
- A CancellationToken is checked before every dispatch and wakes any pending delay
- RUNNING is reported to the optional state listener as each step starts; the
  returned ExecutionResult always carries a terminal state
"""

import logging
import time
from typing import Callable, List, Optional

from intent_kernel.execution.capabilities import CancellationToken, Pause
from intent_kernel.execution.dispatcher import ExecutionDispatcher
from intent_kernel.models.execution import ExecutionResult, StepResult, WorkflowState
from intent_kernel.models.plan import ActionStep, IntentPlan

logger = logging.getLogger(__name__)


def _cancelled(token: Optional[CancellationToken]) -> bool:
    return token is not None and token.is_cancelled


# (state, step_number) -> None
StateListener = Callable[[WorkflowState, int], None]


class WorkflowEngine:
    """Executes single-action and multi-step plans."""

    def __init__(
        self,
        dispatcher: ExecutionDispatcher,
        pause: Optional[Pause] = None,
        on_state: Optional[StateListener] = None,
    ):
        self.dispatcher = dispatcher
        self.pause = pause or dispatcher.pause
        self.on_state = on_state

    def _notify(self, state: WorkflowState, step_number: int) -> None:
        if self.on_state is None:
            return
        try:
            self.on_state(state, step_number)
        except Exception:
            logger.exception("State listener failed for %s at step %d", state.value, step_number)

    def execute(
        self,
        plan: IntentPlan,
        token: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """Execute a plan and account for every step that ran."""
        start_time = time.monotonic()

        if not plan.is_multi_step:
            return self._execute_single(plan, token, start_time)

        ordered: List[ActionStep] = sorted(plan.steps, key=lambda s: s.order)
        total = len(ordered)
        results: List[StepResult] = []
        logger.info("Executing multi-step workflow with %d steps", total)

        for index, step in enumerate(ordered, start=1):
            if _cancelled(token):
                return self._cancelled_result(results, total, start_time)

            self._notify(WorkflowState.RUNNING, index)
            logger.info("Step %d: %s -> %s", step.order, step.action, step.target)
            result = self.dispatcher.dispatch(step, token)
            results.append(result)

            if not result.success:
                if _cancelled(token):
                    return self._cancelled_result(results, total, start_time, ran_failed=True)
                logger.warning(
                    "Step %d failed: %s. Stopping workflow.", step.order, result.message
                )
                return self._finish(
                    success=False,
                    message=f"Workflow stopped at step {len(results)} of {total}",
                    results=results,
                    total=total,
                    start_time=start_time,
                )

            if step.delay_ms > 0 and index < total:
                logger.debug("Waiting %dms before next step", step.delay_ms)
                if not self.pause.pause(step.delay_ms, token):
                    return self._cancelled_result(results, total, start_time)

        return self._finish(
            success=True,
            message=f"Completed all {len(results)} steps successfully",
            results=results,
            total=total,
            start_time=start_time,
        )

    def _execute_single(
        self,
        plan: IntentPlan,
        token: Optional[CancellationToken],
        start_time: float,
    ) -> ExecutionResult:
        if _cancelled(token):
            return self._cancelled_result([], 1, start_time)

        self._notify(WorkflowState.RUNNING, 1)
        result = self.dispatcher.dispatch(plan.as_single_step(), token)
        return self._finish(
            success=result.success,
            message=result.message,
            results=[result],
            total=1,
            start_time=start_time,
        )

    def _cancelled_result(
        self,
        results: List[StepResult],
        total: int,
        start_time: float,
        ran_failed: bool = False,
    ) -> ExecutionResult:
        # The step named is the one that did not complete.
        at_step = len(results) if ran_failed else len(results) + 1
        logger.warning("Workflow cancelled at step %d of %d", at_step, total)
        return self._finish(
            success=False,
            message=f"Workflow cancelled at step {at_step} of {total}",
            results=results,
            total=total,
            start_time=start_time,
            cancelled=True,
        )

    def _finish(
        self,
        success: bool,
        message: str,
        results: List[StepResult],
        total: int,
        start_time: float,
        cancelled: bool = False,
    ) -> ExecutionResult:
        elapsed = time.monotonic() - start_time
        if success:
            logger.info(message)
        state = WorkflowState.COMPLETED if success else WorkflowState.ABORTED
        self._notify(state, len(results))
        return ExecutionResult(
            success=success,
            message=message,
            step_results=list(results),
            state=state,
            cancelled=cancelled,
            planned_steps=total,
            duration_seconds=round(elapsed, 3),
        )
