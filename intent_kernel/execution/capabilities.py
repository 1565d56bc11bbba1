"""
Capability interfaces consumed by the Execution Dispatcher.

The dispatcher never talks to the operating system directly. Each host-level
effect goes through one of these small interfaces so it can be swapped for a
platform backend or a test double.
"""

import logging
import os
import shlex
import subprocess
import sys
import threading
import time
import webbrowser
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class CapabilityBindingError(Exception):
    """Raised at wiring time when a required capability is missing."""
    pass


class ProcessLauncher(Protocol):
    """Launches an executable or opens a URL."""

    def launch(self, executable_or_url: str, args: Optional[str] = None) -> bool: ...


class TextInput(Protocol):
    """Keyboard injection."""

    def type_text(self, text: str) -> None: ...

    def press_key(self, key: str) -> None: ...


class MouseControl(Protocol):
    """Mouse injection."""

    def move_mouse(self, x: int, y: int) -> None: ...

    def click(self) -> None: ...


class CancellationToken:
    """
    Cooperative cancellation for one workflow run.

    Checked before every dispatch and honoured by every suspension point, so a
    pending delay ends as soon as cancel() is called.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns False if cancelled while waiting."""
        return not self._event.wait(timeout=max(0.0, seconds))


class Pause(Protocol):
    """Suspends the calling workflow. Returns False if the pause was cancelled."""

    def pause(self, milliseconds: int, token: Optional[CancellationToken] = None) -> bool: ...


class CooperativePause:
    """Blocks only the calling thread; wakes early on cancellation."""

    def pause(self, milliseconds: int, token: Optional[CancellationToken] = None) -> bool:
        seconds = max(0, milliseconds) / 1000.0
        if token is None:
            time.sleep(seconds)
            return True
        if token.is_cancelled:
            return False
        return token.wait(seconds)


class SubprocessLauncher:
    """
    Process-launch capability backed by the standard library.

    URLs go to the default browser; executables are started through the shell
    association on Windows and spawned directly elsewhere.
    """

    def launch(self, executable_or_url: str, args: Optional[str] = None) -> bool:
        target = executable_or_url.strip()
        if not target:
            return False

        lowered = target.lower()
        if lowered.startswith("http://") or lowered.startswith("https://"):
            opened = webbrowser.open(target)
            logger.info("Opened URL: %s (ok=%s)", target, opened)
            return bool(opened)

        try:
            if sys.platform == "win32":
                os.startfile(target, arguments=args or "")
            else:
                argv = [target] + (shlex.split(args) if args else [])
                subprocess.Popen(
                    argv,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
        except OSError as e:
            logger.warning("Failed to launch %s: %s", target, e)
            return False

        logger.info("Launched: %s", target)
        return True
