"""
Execution Dispatcher — maps one ActionStep onto a host-level effect.

Behavioral Contract:
- Every side-effecting launch is authorized by the Policy Evaluator first
- Never raises: policy denials, missing capabilities and capability
  exceptions all come back as a failed StepResult
- Holds no state between steps
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import quote

from intent_kernel.execution.capabilities import (
    CancellationToken,
    CapabilityBindingError,
    CooperativePause,
    MouseControl,
    Pause,
    ProcessLauncher,
    TextInput,
)
from intent_kernel.governance.guardrail import PolicyEvaluator
from intent_kernel.models.config import ExecutionConfig
from intent_kernel.models.execution import StepResult
from intent_kernel.models.plan import ActionStep, ActionVerb

logger = logging.getLogger(__name__)


SERVICE_UNAVAILABLE = "Input control service not available"

StepHandler = Callable[[ActionStep, Optional[CancellationToken]], StepResult]


def _result(step: ActionStep, success: bool, message: str) -> StepResult:
    return StepResult(
        step_number=step.order,
        action=step.action,
        success=success,
        message=message,
    )


def _int_param(
    parameters: Mapping[str, Any],
    key: str,
    default: int,
    lenient: bool = False,
) -> int:
    """
    Read an integer parameter. Missing keys give the default; non-numeric
    values give the default when lenient, else raise ValueError.
    """
    if key not in parameters or parameters[key] is None:
        return default
    value = parameters[key]
    try:
        if isinstance(value, bool):
            raise ValueError(f"{key} must be a number, got {value!r}")
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        if lenient:
            return default
        raise ValueError(f"{key} must be a number, got {value!r}")


class ExecutionDispatcher:
    """Dispatches single steps to the capability that carries them out."""

    def __init__(
        self,
        evaluator: PolicyEvaluator,
        launcher: ProcessLauncher,
        text_input: Optional[TextInput] = None,
        mouse: Optional[MouseControl] = None,
        pause: Optional[Pause] = None,
        config: Optional[ExecutionConfig] = None,
    ):
        if evaluator is None:
            raise CapabilityBindingError("A policy evaluator is required")
        if launcher is None:
            raise CapabilityBindingError("A process-launch capability is required")

        self.evaluator = evaluator
        self.launcher = launcher
        self.text_input = text_input
        self.mouse = mouse
        self.pause = pause or CooperativePause()
        self.config = config or ExecutionConfig()
        self._aliases = {k.strip().lower(): v for k, v in self.config.app_aliases.items()}
        self._handlers: Dict[ActionVerb, StepHandler] = {}
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        self._handlers[ActionVerb.OPEN_APP] = self._open_app
        self._handlers[ActionVerb.TYPE_TEXT] = self._type_text
        self._handlers[ActionVerb.PRESS_KEY] = self._press_key
        self._handlers[ActionVerb.WAIT] = self._wait
        self._handlers[ActionVerb.SEARCH_WEB] = self._search_web
        self._handlers[ActionVerb.CLICK] = self._click
        self._handlers[ActionVerb.MOVE_MOUSE] = self._move_mouse

    def resolve_executable(self, app_name: Optional[str]) -> str:
        """Alias table lookup; unresolved names get the executable suffix."""
        name = (app_name or "").strip().lower()
        if name in self._aliases:
            return self._aliases[name]
        suffix = self.config.executable_suffix
        return name if name.endswith(suffix) else f"{name}{suffix}"

    def build_search_url(self, query: Optional[str]) -> str:
        return self.config.search_url_template.format(query=quote(query or "", safe=""))

    def dispatch(
        self,
        step: ActionStep,
        token: Optional[CancellationToken] = None,
    ) -> StepResult:
        """Carry out one step. Never raises."""
        handler = self._handlers.get(step.verb)
        if handler is None:
            logger.warning("Unknown action: %s", step.action)
            return _result(step, False, f"unknown action: {step.action}")

        logger.info("Dispatching step %d: %s -> %s", step.order, step.action, step.target)
        try:
            return handler(step, token)
        except Exception as e:
            logger.exception("Error executing step %d: %s", step.order, step.action)
            return _result(step, False, f"Error: {e}")

    # --- Handlers ---

    def _open_app(self, step: ActionStep, token: Optional[CancellationToken]) -> StepResult:
        if not (step.target or "").strip():
            return _result(step, False, "No application specified")

        executable = self.resolve_executable(step.target)
        decision = self.evaluator.authorize("open", executable)
        if not decision.allowed:
            logger.warning("Action blocked by guardrails: open %s", executable)
            return _result(step, False, f"Security policy blocks: {executable}")

        args = step.parameters.get("args")
        try:
            launched = self.launcher.launch(executable, str(args) if args is not None else None)
        except Exception as e:
            logger.exception("Failed to open: %s", executable)
            return _result(step, False, f"Failed to open {step.target}: {e}")

        if not launched:
            return _result(step, False, f"Failed to open {step.target}")
        logger.info("Opened: %s", executable)
        return _result(step, True, f"Opened {step.target}")

    def _type_text(self, step: ActionStep, token: Optional[CancellationToken]) -> StepResult:
        if self.text_input is None:
            return _result(step, False, SERVICE_UNAVAILABLE)

        text = step.target or ""
        try:
            self.text_input.type_text(text)
        except Exception as e:
            logger.exception("Failed to type text")
            return _result(step, False, f"Failed to type text: {e}")
        return _result(step, True, f"Typed: {text}")

    def _press_key(self, step: ActionStep, token: Optional[CancellationToken]) -> StepResult:
        if self.text_input is None:
            return _result(step, False, SERVICE_UNAVAILABLE)

        key = step.target or ""
        try:
            self.text_input.press_key(key)
        except Exception as e:
            logger.exception("Failed to press key: %s", key)
            return _result(step, False, f"Failed to press key: {e}")
        return _result(step, True, f"Pressed: {key}")

    def _wait(self, step: ActionStep, token: Optional[CancellationToken]) -> StepResult:
        ms = max(0, _int_param(
            step.parameters, "milliseconds", self.config.default_wait_ms, lenient=True
        ))
        logger.info("Waiting %dms", ms)
        try:
            completed = self.pause.pause(ms, token)
        except Exception as e:
            return _result(step, False, f"Wait failed: {e}")
        if not completed:
            return _result(step, False, "Wait cancelled")
        return _result(step, True, f"Waited {ms}ms")

    def _search_web(self, step: ActionStep, token: Optional[CancellationToken]) -> StepResult:
        query = step.target or ""
        url = self.build_search_url(query)

        if self.config.police_web_search:
            decision = self.evaluator.authorize("search", url)
            if not decision.allowed:
                logger.warning("Action blocked by guardrails: search %s", url)
                return _result(step, False, f"Security policy blocks: {url}")

        try:
            launched = self.launcher.launch(url, None)
        except Exception as e:
            logger.exception("Failed to search web: %s", query)
            return _result(step, False, f"Search failed: {e}")

        if not launched:
            return _result(step, False, f"Search failed: could not open {url}")
        return _result(step, True, f"Searching for: {query}")

    def _click(self, step: ActionStep, token: Optional[CancellationToken]) -> StepResult:
        if self.mouse is None:
            return _result(step, False, SERVICE_UNAVAILABLE)

        try:
            self.mouse.click()
        except Exception as e:
            return _result(step, False, f"Click failed: {e}")
        return _result(step, True, "Mouse clicked")

    def _move_mouse(self, step: ActionStep, token: Optional[CancellationToken]) -> StepResult:
        if self.mouse is None:
            return _result(step, False, SERVICE_UNAVAILABLE)

        try:
            x = _int_param(step.parameters, "x", 0)
            y = _int_param(step.parameters, "y", 0)
            self.mouse.move_mouse(x, y)
        except Exception as e:
            return _result(step, False, f"Mouse move failed: {e}")
        return _result(step, True, f"Moved mouse to ({x}, {y})")
