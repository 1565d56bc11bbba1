"""Kernel configuration, loaded once per process."""

import json
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ValidationError

from intent_kernel.models.policy import SecurityPolicy


CONFIG_ENV_VAR = "INTENT_KERNEL_CONFIG"


DEFAULT_APP_ALIASES: Dict[str, str] = {
    "notepad": "notepad.exe",
    "calculator": "calc.exe",
    "calc": "calc.exe",
    "paint": "mspaint.exe",
    "explorer": "explorer.exe",
    "file explorer": "explorer.exe",
    "chrome": "chrome.exe",
    "edge": "msedge.exe",
    "firefox": "firefox.exe",
    "vscode": "code.exe",
    "code": "code.exe",
    "cmd": "cmd.exe",
    "command prompt": "cmd.exe",
    "powershell": "powershell.exe",
}


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""
    pass


class ExecutionConfig(BaseModel):
    """Configuration for the Execution Dispatcher."""

    app_aliases: Dict[str, str] = dict(DEFAULT_APP_ALIASES)
    executable_suffix: str = ".exe"
    search_url_template: str = "https://www.google.com/search?q={query}"
    default_wait_ms: int = 1000
    police_web_search: bool = True


class IntentSourceConfig(BaseModel):
    """Configuration for the language-model intent source."""

    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    timeout_seconds: float = 120.0
    max_context_chars: int = 4000


class KernelConfig(BaseModel):
    """Top-level configuration."""

    security: SecurityPolicy = SecurityPolicy()
    execution: ExecutionConfig = ExecutionConfig()
    ai: IntentSourceConfig = IntentSourceConfig()
    audit_db_path: str = ":memory:"


def load_config(path: Optional[str] = None) -> KernelConfig:
    """
    Load configuration from a JSON file.

    The path is taken from the argument or from INTENT_KERNEL_CONFIG. A missing
    path or file yields the defaults; unreadable or invalid content raises
    ConfigError so wiring fails fast.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return KernelConfig()

    config_file = Path(path)
    if not config_file.is_file():
        return KernelConfig()

    try:
        data = json.loads(config_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read config {config_file}: {e}") from e

    try:
        return KernelConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {config_file}: {e}") from e
