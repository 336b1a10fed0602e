"""
Resolve command implementation.

Prints the concrete versions the requested runtimes resolve to, without
downloading or installing anything.
"""

import logging

from runtimekit.cli.utils import print_error, print_values, settings_from_args
from runtimekit.core.actions import ActionsContext
from runtimekit.core.exceptions import RuntimeKitError
from runtimekit.workflow import SetupWorkflow

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the resolve command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    actions = ActionsContext()

    try:
        settings = settings_from_args(args, environ=actions.environ)
        package_manager, resolved = SetupWorkflow(settings, actions=actions).resolve()
    except RuntimeKitError as e:
        print_error("Failed to resolve runtime versions", str(e))
        return 1

    values = {f"{item.runtime}-version": item.concrete_version for item in resolved}
    values["package-manager"] = package_manager.name
    values["package-manager-version"] = package_manager.version
    print_values(values)
    return 0
