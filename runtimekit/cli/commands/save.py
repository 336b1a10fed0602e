"""
Save command implementation.

Post-job step: saves the dependency cache under the key computed by setup.
Failures are reported as warnings and never fail the job.
"""

import logging

from runtimekit.cli.utils import settings_from_args
from runtimekit.core.actions import ActionsContext
from runtimekit.core.exceptions import RuntimeKitError
from runtimekit.workflow import save_cache

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the save command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (always 0)
    """
    actions = ActionsContext()

    try:
        settings = settings_from_args(args, environ=actions.environ)
        with actions.group("Saving cache"):
            saved = save_cache(settings, actions=actions)
    except RuntimeKitError as e:
        actions.warning(f"Post-job cache save failed: {e}")
        return 0

    if saved:
        logger.info("Cache saved")
    return 0
