"""Intent Kernel data models."""

from intent_kernel.models.config import (
    ConfigError,
    ExecutionConfig,
    IntentSourceConfig,
    KernelConfig,
    load_config,
)
from intent_kernel.models.execution import ExecutionResult, StepResult, WorkflowState
from intent_kernel.models.plan import (
    MULTI_STEP_ACTION,
    ActionStep,
    ActionVerb,
    IntentPlan,
)
from intent_kernel.models.policy import (
    ActionLog,
    PolicyDecision,
    PolicyVerdict,
    SecurityPolicy,
)

__all__ = [
    "MULTI_STEP_ACTION",
    "ActionLog",
    "ActionStep",
    "ActionVerb",
    "ConfigError",
    "ExecutionConfig",
    "ExecutionResult",
    "IntentPlan",
    "IntentSourceConfig",
    "KernelConfig",
    "PolicyDecision",
    "PolicyVerdict",
    "SecurityPolicy",
    "StepResult",
    "WorkflowState",
    "load_config",
]
