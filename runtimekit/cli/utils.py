"""
Shared utilities for CLI commands.

Provides the option table shared by the commands that run the pipeline and
the error and output helpers every command uses.
"""

import logging
import sys
from argparse import BooleanOptionalAction
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from runtimekit.config.settings import OPTIONS, Settings, load_settings

logger = logging.getLogger(__name__)


# ============================================================================
# Pipeline Options
# ============================================================================


# option name -> (help text, kind); kind 'flag' takes --name/--no-name
PIPELINE_OPTIONS = {
    "node-version": ("Node.js version specifier (e.g. 20, 20.x, lts/*, lts/iron)", "value"),
    "node-version-file": ("File holding the Node.js version (default: .nvmrc, .node-version)", "value"),
    "bun-version": ("Bun version specifier", "value"),
    "deno-version": ("Deno version specifier", "value"),
    "package-manager": ("Package manager override (npm, pnpm, yarn, bun, deno)", "value"),
    "package-manager-version": ("Package manager version override", "value"),
    "additional-lockfiles": ("Extra lockfile patterns (comma, newline or JSON list)", "value"),
    "additional-cache-paths": ("Extra cache paths (comma, newline or JSON list)", "value"),
    "cache-bust": ("Salt mixed into the cache key", "value"),
    "tool-cache-dir": ("Tool cache root (default: $RUNNER_TOOL_CACHE)", "value"),
    "cache-dir": ("Local cache directory (default: $RUNTIMEKIT_CACHE_DIR)", "value"),
    "install-deps": ("Install dependencies after restoring the cache", "flag"),
    "cache": ("Restore and save the dependency cache", "flag"),
    "verify-checksums": ("Verify downloads against published SHA-256 sums", "flag"),
    "parallel": ("Install runtimes concurrently", "flag"),
}


def add_pipeline_arguments(parser) -> None:
    """Add the runtime, package manager and cache options to a subcommand."""
    for name, (help_text, kind) in PIPELINE_OPTIONS.items():
        if kind == "flag":
            parser.add_argument(f"--{name}", action=BooleanOptionalAction, default=None, help=help_text)
        else:
            parser.add_argument(f"--{name}", metavar="VALUE", default=None, help=help_text)


def cli_overrides(args) -> Dict[str, Any]:
    """Collect option values given on the command line, keyed by option name."""
    overrides = {}
    for name in OPTIONS:
        value = getattr(args, name.replace("-", "_"), None)
        if value is not None:
            overrides[name] = value
    return overrides


def settings_from_args(args, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings for a command.

    Raises:
        ConfigError: If any configuration layer is invalid
    """
    project_root = resolve_project_root(getattr(args, "project_root", None))
    return load_settings(
        project_root,
        config_path=getattr(args, "config", None),
        environ=environ,
        overrides=cli_overrides(args),
    )


# ============================================================================
# Output Formatting
# ============================================================================


def format_summary(title: str, details: Mapping[str, Any], width: int = 70) -> str:
    """
    Format a summary block.

    Args:
        title: Summary title
        details: Key-value pairs to display; empty values are shown as '-'
        width: Width of the rule lines

    Returns:
        Formatted message string
    """
    lines = ["=" * width, title, "=" * width]
    for key, value in details.items():
        lines.append(f"{key}: {value if value not in (None, '') else '-'}")
    lines.append("")
    return "\n".join(lines)


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def print_values(values: Mapping[str, Any], file=None):
    """Print ``name=value`` lines."""
    for name, value in values.items():
        print(f"{name}={value}", file=file)


# ============================================================================
# Path Utilities
# ============================================================================


def resolve_project_root(path: Optional[Path] = None) -> Path:
    """
    Resolve project root directory.

    Args:
        path: Optional path (defaults to current directory)

    Returns:
        Resolved absolute path
    """
    if path is None:
        path = Path.cwd()
    return Path(path).resolve()


__all__ = [
    "PIPELINE_OPTIONS",
    "add_pipeline_arguments",
    "cli_overrides",
    "settings_from_args",
    "format_summary",
    "print_error",
    "print_values",
    "resolve_project_root",
]
