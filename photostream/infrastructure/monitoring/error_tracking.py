"""Error escalation for unexpected failures.

Operational errors (validation, rate limit, not found) are expected and only
logged at warning level. Anything else is escalated: logged at error level
with the traceback and the caller's context.
"""

import logging
from typing import Any, Dict, Optional

from photostream.domain.errors import is_operational

logger = logging.getLogger(__name__)


def capture_error(error: BaseException, context: Optional[Dict[str, Any]] = None) -> bool:
    """Records an error according to whether it is operational.

    Args:
        error: The exception that reached an error boundary.
        context: Extra diagnostic fields (operation, asset id, request path).

    Returns:
        True if the error was escalated.
    """
    context = context or {}
    if is_operational(error):
        logger.warning(f"Operational error: {type(error).__name__}: {error} context={context}")
        return False

    logger.error(
        f"Unexpected error: {type(error).__name__}: {error} context={context}",
        exc_info=(type(error), error, error.__traceback__),
    )
    return True
