"""
GitHub Actions runner integration.

Inputs arrive as ``INPUT_<NAME>`` environment variables; outputs, saved state
and PATH additions are appended to the files named by ``$GITHUB_OUTPUT``,
``$GITHUB_STATE`` and ``$GITHUB_PATH``. Outside of Actions, outputs are
printed as ``name=value`` lines and PATH additions only affect this process.

Usage:
    from runtimekit.core.actions import ActionsContext

    ctx = ActionsContext()
    ctx.set_output("cache-hit", "true")
    with ctx.group("Installing node"):
        ...
"""

import logging
import os
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import MutableMapping, Optional, TextIO

logger = logging.getLogger(__name__)


def input_env_name(name: str) -> str:
    """
    Environment variable carrying an action input.

    Example:
        >>> input_env_name("node-version")
        'INPUT_NODE-VERSION'
    """
    return f"INPUT_{name.replace(' ', '_').upper()}"


def _format_command_value(name: str, value: str) -> str:
    if "\n" not in value:
        return f"{name}={value}\n"
    # Multi-line values need a delimiter that cannot occur in the value
    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"


class ActionsContext:
    """
    Reads inputs and writes outputs for one step.

    Args:
        environ: Environment mapping (default: os.environ); PATH updates are
            written back into it
        stream: Where plain output lines go when not running under Actions
    """

    def __init__(
        self,
        environ: Optional[MutableMapping[str, str]] = None,
        stream: Optional[TextIO] = None,
    ):
        self.environ = os.environ if environ is None else environ
        self.stream = stream

    @property
    def is_actions(self) -> bool:
        return self.environ.get("GITHUB_ACTIONS") == "true"

    def _out(self) -> TextIO:
        return self.stream if self.stream is not None else sys.stdout

    def _append(self, env_var: str, text: str) -> bool:
        target = self.environ.get(env_var)
        if not target:
            return False
        with open(Path(target), "a", encoding="utf-8") as f:
            f.write(text)
        return True

    def get_input(self, name: str) -> str:
        """Return the trimmed input value, or '' when unset."""
        return self.environ.get(input_env_name(name), "").strip()

    def set_output(self, name: str, value: str) -> None:
        """Write a step output to $GITHUB_OUTPUT, or print it."""
        line = _format_command_value(name, str(value))
        if not self._append("GITHUB_OUTPUT", line):
            self._out().write(line)
        logger.debug(f"Output {name}={value}")

    def save_state(self, name: str, value: str) -> bool:
        """
        Save a value for the post-job step.

        Returns:
            True if $GITHUB_STATE was written, False when not under Actions
        """
        return self._append("GITHUB_STATE", _format_command_value(name, str(value)))

    def get_state(self, name: str) -> str:
        """Read a value saved by :meth:`save_state` in an earlier step."""
        return self.environ.get(f"STATE_{name}", "")

    def add_path(self, directory: Path) -> None:
        """Prepend a directory to PATH for this process and later steps."""
        directory = str(directory)
        current = self.environ.get("PATH", "")
        self.environ["PATH"] = f"{directory}{os.pathsep}{current}" if current else directory
        self._append("GITHUB_PATH", f"{directory}\n")
        logger.debug(f"Added {directory} to PATH")

    def warning(self, message: str) -> None:
        """Emit a warning annotation under Actions, a log warning otherwise."""
        if self.is_actions:
            self._out().write(f"::warning::{message}\n")
        else:
            logger.warning(message)

    @contextmanager
    def group(self, title: str):
        """Fold the enclosed log output into a collapsible group under Actions."""
        if self.is_actions:
            out = self._out()
            out.write(f"::group::{title}\n")
            out.flush()
            try:
                yield
            finally:
                out.write("::endgroup::\n")
                out.flush()
        else:
            logger.info(title)
            yield


__all__ = ["ActionsContext", "input_env_name"]
