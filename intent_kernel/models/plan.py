"""Intent Plan — the typed representation of what the model asked us to do."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


MULTI_STEP_ACTION = "multi_step"


class ActionVerb(str, Enum):
    """Closed set of verbs the dispatcher knows how to carry out."""

    OPEN_APP = "open_app"
    TYPE_TEXT = "type_text"
    PRESS_KEY = "press_key"
    WAIT = "wait"
    SEARCH_WEB = "search_web"
    CLICK = "click"
    MOVE_MOUSE = "move_mouse"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, text: Optional[str]) -> "ActionVerb":
        """Case-insensitive lookup. Anything unrecognised is UNKNOWN."""
        if not text:
            return cls.UNKNOWN
        try:
            return cls(text.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class ActionStep(BaseModel):
    """A single unit of work within a plan."""

    model_config = ConfigDict(frozen=True)

    action: str                             # Verb, case-insensitive
    target: Optional[str] = None            # App name, text, key, query...
    parameters: Dict[str, Any] = {}
    order: int = 0                          # 1-based execution order
    delay_ms: int = Field(ge=0, default=0)  # Pause after a successful step
    description: str = ""

    @property
    def verb(self) -> ActionVerb:
        return ActionVerb.parse(self.action)


class IntentPlan(BaseModel):
    """
    Parsed model output. Either a single action (action/target/parameters)
    or an ordered list of steps. Never mutated after parsing.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    message: str = ""
    raw_text: str = ""                      # Verbatim model output, kept for audit
    action: str = ""
    target: Optional[str] = None
    parameters: Dict[str, Any] = {}
    steps: List[ActionStep] = []

    @model_validator(mode="before")
    @classmethod
    def _force_multi_step_marker(cls, data: Any) -> Any:
        # A multi-step plan is never dispatched through its top-level action.
        if isinstance(data, dict) and data.get("steps"):
            data = {**data, "action": MULTI_STEP_ACTION}
        return data

    @property
    def is_multi_step(self) -> bool:
        return len(self.steps) > 0

    def as_single_step(self) -> ActionStep:
        """The top-level action expressed as a one-step workflow."""
        return ActionStep(
            action=self.action,
            target=self.target,
            parameters=self.parameters,
            order=1,
            description=self.message,
        )
