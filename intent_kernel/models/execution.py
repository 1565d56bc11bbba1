"""Execution Result — outcome of running a plan through the Workflow Engine."""

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.utcnow()


class WorkflowState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"   # Terminal: every step succeeded
    ABORTED = "aborted"       # Terminal: first failure or cancellation


class StepResult(BaseModel):
    """Outcome of dispatching one step. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    step_number: int
    action: str
    success: bool
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ExecutionResult(BaseModel):
    """Outcome of executing a whole plan."""

    success: bool
    message: str
    step_results: List[StepResult] = []     # Execution order; a prefix on abort
    state: WorkflowState = WorkflowState.PENDING
    cancelled: bool = False
    planned_steps: int = 0
    duration_seconds: float = 0.0
