"""
Key command implementation.

Installs the requested runtimes (reusing the tool cache) and prints the cache
key, the fallback key, the lockfiles and the cache paths without restoring.
"""

import logging

from runtimekit.cache.lockfiles import relative_lockfiles
from runtimekit.cli.utils import print_error, print_values, settings_from_args
from runtimekit.core.actions import ActionsContext
from runtimekit.core.exceptions import RuntimeKitError
from runtimekit.workflow import SetupWorkflow

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the key command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    actions = ActionsContext()

    try:
        settings = settings_from_args(args, environ=actions.environ)
        workflow = SetupWorkflow(settings, actions=actions)
        result = workflow.prepare()
    except RuntimeKitError as e:
        print_error("Failed to compute the cache key", str(e))
        return 1

    print_values(
        {
            "cache-key": result.cache_key.primary_key,
            "fallback-key": result.cache_key.fallback_key,
            "lockfiles": ",".join(relative_lockfiles(result.lockfiles, workflow.project_root)),
            "cache-paths": ",".join(result.cache_paths),
        }
    )
    return 0
