"""
Running package manager and corepack commands.

Two flavours are needed:
- :func:`query_command` asks a tool something (``npm config get cache``,
  ``pnpm --version``) and treats any failure as "no answer"
- :func:`run_command` performs an action (``npm ci``) and raises on failure

Executables are looked up on the PATH of the supplied environment, so
runtimes installed earlier in the same process are found.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional

from runtimekit.core.exceptions import CommandError

logger = logging.getLogger(__name__)

QUERY_TIMEOUT = 15


def _resolve_executable(name: str, env: Optional[Mapping[str, str]]) -> Optional[str]:
    path = (env if env is not None else os.environ).get("PATH")
    return shutil.which(name, path=path)


def query_command(
    args: List[str],
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: float = QUERY_TIMEOUT,
) -> Optional[str]:
    """
    Run a command and return its trimmed stdout.

    Returns:
        stdout, or None if the executable is missing, the command fails,
        times out or prints nothing
    """
    executable = _resolve_executable(args[0], env)
    if executable is None:
        logger.debug(f"{args[0]} not found on PATH")
        return None

    try:
        result = subprocess.run(
            [executable, *args[1:]],
            cwd=cwd,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"'{' '.join(args)}' failed: {e}")
        return None

    if result.returncode != 0:
        logger.debug(f"'{' '.join(args)}' exited with {result.returncode}: {result.stderr.strip()}")
        return None

    output = result.stdout.strip()
    return output or None


def run_command(
    args: List[str],
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> None:
    """
    Run a command with inherited stdout/stderr.

    Raises:
        CommandError: If the executable is missing, times out or exits non-zero
    """
    command = " ".join(args)
    executable = _resolve_executable(args[0], env)
    if executable is None:
        raise CommandError(command, f"failed: {args[0]} not found on PATH")

    logger.info(f"Running {command}")
    try:
        result = subprocess.run(
            [executable, *args[1:]],
            cwd=cwd,
            env=dict(env) if env is not None else None,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandError(command, f"timed out after {timeout} seconds") from e
    except OSError as e:
        raise CommandError(command, f"could not be started: {e}") from e

    if result.returncode != 0:
        raise CommandError(
            command, f"exited with status {result.returncode}", returncode=result.returncode
        )


__all__ = ["QUERY_TIMEOUT", "query_command", "run_command"]
