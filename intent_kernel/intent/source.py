"""
Raw intent source — asks a language model what a command means.

The model is a black box returning free text. Nothing here interprets that
text; it goes to the Plan Parser unchanged.
"""

import json
import logging
import re
import urllib.error
import urllib.request
from typing import Any, Dict, Optional, Protocol

from intent_kernel.models.config import IntentSourceConfig

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are an assistant that controls the user's computer through voice commands.

Your role:
1. Analyze the user's command and any screen context
2. Determine what the user wants to do
3. Respond with structured JSON describing the action or actions to take

Available actions:
- open_app: Launch an application (target: application name, parameters.args optional)
- type_text: Type text into the active window (target: the text)
- press_key: Press a key (target: key name such as ENTER, TAB, ESC)
- wait: Pause (parameters.milliseconds)
- search_web: Open the browser and search (target: the query)
- move_mouse: Move the mouse (parameters.x, parameters.y)
- click: Click at the current mouse position

Response format for a single action (JSON only, no markdown):
{
  "action": "action_name",
  "target": "target_application_or_text",
  "parameters": {},
  "confidence": 0.95,
  "explanation": "Brief explanation of what you understood"
}

Response format when the command needs several actions:
{
  "steps": [
    {"action": "open_app", "target": "notepad", "order": 1, "delayMs": 1000, "description": "Open Notepad"},
    {"action": "type_text", "target": "Hello", "order": 2, "delayMs": 0, "description": "Type the greeting"}
  ],
  "confidence": 0.9,
  "explanation": "Brief explanation of the plan"
}

If you're unsure, ask for clarification with action: "clarify".
If the command is unsafe or unclear, use action: "deny" with an explanation.

Be concise and always respond with valid JSON."""


_INJECTION_PATTERNS = [
    r"(?i)ignore (all|any|previous) instructions",
    r"(?i)system prompt",
    r"(?i)developer message",
    r"(?i)exfiltrate",
]


class IntentSourceError(Exception):
    """Raised when the language model cannot be reached or answers garbage."""
    pass


class IntentSource(Protocol):
    """(command, optional screen context) -> raw model text."""

    def generate(self, command: str, screen_context: Optional[str] = None) -> str: ...


def sanitize_screen_context(text: Optional[str], max_chars: int = 4000) -> str:
    """Truncate untrusted screen text and drop lines that look like injected instructions."""
    text = (text or "").strip()
    if len(text) > max_chars:
        text = text[:max_chars] + "\n…[truncated]"
    kept = [
        line for line in text.splitlines()
        if not any(re.search(p, line) for p in _INJECTION_PATTERNS)
    ]
    return "\n".join(kept).strip()


def build_prompt(
    command: str,
    screen_context: Optional[str] = None,
    max_context_chars: int = 4000,
) -> str:
    """System prompt, the quoted command, then any sanitised screen context."""
    user_prompt = f'User command: "{command}"'
    context = sanitize_screen_context(screen_context, max_context_chars)
    if context:
        user_prompt += f"\n\nScreen context:\n{context}"
    return f"{SYSTEM_PROMPT}\n\n{user_prompt}"


class OllamaIntentSource:
    """Intent source backed by a local Ollama server (`/api/generate`)."""

    def __init__(self, config: Optional[IntentSourceConfig] = None):
        self.config = config or IntentSourceConfig()
        self.base_url = self.config.ollama_base_url.rstrip("/")
        self.model = self.config.ollama_model

    def generate(self, command: str, screen_context: Optional[str] = None) -> str:
        prompt = build_prompt(command, screen_context, self.config.max_context_chars)
        payload: Dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": False}
        req = urllib.request.Request(
            f"{self.base_url}/api/generate",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        logger.info("Processing command: %s", command)
        try:
            with urllib.request.urlopen(req, timeout=self.config.timeout_seconds) as r:
                data = json.loads(r.read().decode("utf-8"))
        except (urllib.error.URLError, OSError) as e:
            logger.error("Error contacting Ollama at %s: %s", self.base_url, e)
            raise IntentSourceError(f"LLM error: {e}") from e
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise IntentSourceError(f"LLM error: malformed response ({e})") from e

        if not isinstance(data, dict):
            raise IntentSourceError("LLM error: unexpected response shape")

        text = data.get("response") or ""
        logger.info("LLM response: %s", text)
        return text
