"""
Command Pipeline — the thin orchestrator that owns the sequencing.

  command text → IntentSource → PlanParser → WorkflowEngine → CommandOutcome

Each stage is a single call returning a typed result. Nothing here relies on
event subscriptions or shared flags.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from intent_kernel.execution.capabilities import CancellationToken
from intent_kernel.intent.source import IntentSource, IntentSourceError
from intent_kernel.models.execution import ExecutionResult
from intent_kernel.models.plan import IntentPlan
from intent_kernel.parsing.parser import ERROR_ACTION, PlanParser
from intent_kernel.workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


# Plans carrying these actions are answers to the user, not work to do.
NON_EXECUTABLE_ACTIONS = frozenset({"clarify", "deny", ERROR_ACTION})


class CommandOutcome(BaseModel):
    """Everything that happened for one command."""

    command: str
    plan: IntentPlan
    execution: Optional[ExecutionResult] = None
    executed: bool = False
    message: str


class CommandPipeline:
    """Runs commands end to end."""

    def __init__(
        self,
        engine: WorkflowEngine,
        intent_source: Optional[IntentSource] = None,
        parser: Optional[PlanParser] = None,
    ):
        self.engine = engine
        self.intent_source = intent_source
        self.parser = parser or PlanParser()

    def handle(
        self,
        command: str,
        screen_context: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> CommandOutcome:
        """Ask the model about `command`, then execute the resulting plan."""
        if self.intent_source is None:
            logger.error("No intent source configured; command not interpreted")
            return self._source_failure(command, "No intent source configured")

        try:
            raw_text = self.intent_source.generate(command, screen_context)
        except IntentSourceError as e:
            return self._source_failure(command, str(e))

        return self.execute_text(raw_text, command=command, token=token)

    def _source_failure(self, command: str, message: str) -> CommandOutcome:
        plan = IntentPlan(
            success=False,
            action=ERROR_ACTION,
            confidence=0.0,
            message=message,
        )
        return CommandOutcome(command=command, plan=plan, message=plan.message)

    def execute_text(
        self,
        raw_text: str,
        command: str = "",
        token: Optional[CancellationToken] = None,
    ) -> CommandOutcome:
        """Parse model output that is already in hand and execute it."""
        plan = self.parser.parse(raw_text)
        return self.execute_plan(plan, command=command, token=token)

    def execute_plan(
        self,
        plan: IntentPlan,
        command: str = "",
        token: Optional[CancellationToken] = None,
    ) -> CommandOutcome:
        if not plan.success or plan.action.strip().lower() in NON_EXECUTABLE_ACTIONS:
            logger.info("Plan not executed: action=%s success=%s", plan.action, plan.success)
            return CommandOutcome(command=command, plan=plan, message=plan.message)

        execution = self.engine.execute(plan, token)
        return CommandOutcome(
            command=command,
            plan=plan,
            execution=execution,
            executed=True,
            message=execution.message,
        )
