"""
Setup command implementation.

Installs the requested runtimes, restores the dependency cache, installs
dependencies and writes step outputs and state for the post-job save.
"""

import logging

from runtimekit.cli.utils import format_summary, print_error, settings_from_args
from runtimekit.core.actions import ActionsContext
from runtimekit.core.exceptions import RuntimeKitError
from runtimekit.workflow import SetupWorkflow

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the setup command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    logger.debug(f"Arguments: {args}")
    actions = ActionsContext()

    try:
        settings = settings_from_args(args, environ=actions.environ)
        workflow = SetupWorkflow(settings, actions=actions)
        result = workflow.run()
        workflow.write_outputs(result)
        workflow.save_state(result)
    except RuntimeKitError as e:
        logger.debug("Setup failed", exc_info=True)
        print_error("Failed to set up runtimes", str(e))
        return 1

    details = {}
    for item in result.resolved:
        details[item.runtime.display_name] = f"{item.concrete_version} (from {item.source})"
    details["Package manager"] = f"{result.package_manager} (from {result.package_manager.source})"
    details["Cache key"] = result.cache_key.primary_key
    details["Cache hit"] = str(result.cache_outcome)
    details["Dependencies"] = "installed" if result.dependencies_installed else "skipped"
    logger.info(format_summary("Runtime setup complete", details))
    return 0
