"""
Plan Parser — turns loosely structured model output into an IntentPlan.

Behavioral Contract:
- Never raises, whatever the input
- Strips markdown code fences and surrounding prose
- Takes the substring from the first '{' to the last '}' as the candidate object
- Field names are matched case-insensitively; trailing commas are tolerated
- No extractable object   -> success=False, action="clarify", confidence=0.5
- Object fails to decode  -> success=False, action="error",   confidence=0.0
- Steps are attached in declaration order; ordering is the Workflow Engine's job
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from intent_kernel.models.plan import ActionStep, IntentPlan

logger = logging.getLogger(__name__)


CLARIFY_ACTION = "clarify"
ERROR_ACTION = "error"
UNKNOWN_ACTION = "unknown"

_OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_+.\-]*")
_CLOSING_FENCE = re.compile(r"```$")


class _StepPayload(BaseModel):
    """Wire shape of one entry in `steps`, keys already normalised."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    action: Optional[str] = None
    target: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    order: int = 0
    delayms: int = 0
    description: Optional[str] = None

    @field_validator("delayms", mode="after")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(0, value)


class _PlanPayload(BaseModel):
    """Wire shape of the model's JSON object, keys already normalised."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    action: Optional[str] = None
    target: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    confidence: Optional[float] = None
    explanation: Optional[str] = None
    steps: Optional[List[_StepPayload]] = Field(default=None)

    @field_validator("steps", mode="before")
    @classmethod
    def _normalise_step_keys(cls, value):
        if isinstance(value, list):
            return [_normalise_keys(s) if isinstance(s, dict) else s for s in value]
        return value


def _normalise_keys(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Lower-case field names and drop separators: delayMs, delay_ms -> delayms."""
    normalised: Dict[str, Any] = {}
    for key, value in obj.items():
        normalised[str(key).lower().replace("_", "").replace("-", "")] = value
    return normalised


def _strip_code_fences(text: str) -> str:
    """Remove a leading ```lang marker and a trailing ``` marker, if present."""
    text = _OPENING_FENCE.sub("", text, count=1)
    text = _CLOSING_FENCE.sub("", text.rstrip(), count=1)
    return text.strip()


def _extract_object(text: str) -> Optional[str]:
    """Greedy outer-brace scan: first '{' through last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start:end + 1]
    return None


def _strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede '}' or ']' outside string literals."""
    chars: List[str] = []
    last_significant: Optional[int] = None
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            chars.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                last_significant = len(chars) - 1
            continue

        if ch == '"':
            in_string = True
            chars.append(ch)
            continue

        if ch in "}]" and last_significant is not None and chars[last_significant] == ",":
            del chars[last_significant]

        chars.append(ch)
        if not ch.isspace():
            last_significant = len(chars) - 1

    return "".join(chars)


def _clamp_confidence(value: Optional[float]) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))


def _build_steps(payloads: Optional[List[_StepPayload]]) -> List[ActionStep]:
    if not payloads:
        return []
    return [
        ActionStep(
            action=p.action or "",
            target=p.target,
            parameters=p.parameters or {},
            order=p.order,
            delay_ms=p.delayms,
            description=p.description or "",
        )
        for p in payloads
    ]


class PlanParser:
    """Converts raw model text into an IntentPlan."""

    def parse(self, raw_text: Optional[str]) -> IntentPlan:
        raw_text = raw_text if isinstance(raw_text, str) else ""

        try:
            cleaned = _strip_code_fences(raw_text.strip())
            candidate = _extract_object(cleaned)

            if candidate is None:
                logger.warning("Could not find a JSON object in model output")
                return IntentPlan(
                    success=False,
                    action=CLARIFY_ACTION,
                    confidence=0.5,
                    message=raw_text,
                    raw_text=raw_text,
                )

            decoded = json.loads(_strip_trailing_commas(candidate))
            if not isinstance(decoded, dict):
                raise TypeError(f"expected a JSON object, got {type(decoded).__name__}")

            payload = _PlanPayload.model_validate(_normalise_keys(decoded))
            steps = _build_steps(payload.steps)

            plan = IntentPlan(
                success=True,
                action=payload.action or UNKNOWN_ACTION,
                target=payload.target,
                parameters=payload.parameters or {},
                confidence=_clamp_confidence(payload.confidence),
                message=payload.explanation or raw_text,
                raw_text=raw_text,
                steps=steps,
            )
            logger.info(
                "Parsed plan: action=%s steps=%d confidence=%.2f",
                plan.action, len(plan.steps), plan.confidence,
            )
            return plan

        except (ValueError, TypeError, RecursionError) as e:
            # json.JSONDecodeError and pydantic.ValidationError are ValueErrors
            logger.warning("Error parsing model output: %s", e)
            return IntentPlan(
                success=False,
                action=ERROR_ACTION,
                confidence=0.0,
                message=f"Parse error: {e}",
                raw_text=raw_text,
            )


_default_parser = PlanParser()


def parse_plan(raw_text: Optional[str]) -> IntentPlan:
    """Parse model output with the default parser."""
    return _default_parser.parse(raw_text)
