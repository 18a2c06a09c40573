"""
Best-effort side effects.

Notifications and chat enrollment follow a committed primary write. They
run to completion inline, and any exception they raise is logged and
dropped here so it can never reach the caller or undo the primary action.
"""

import logging
from typing import Any, Callable

from app.core.exceptions import SideEffectFailure

logger = logging.getLogger(__name__)


def run_side_effect(name: str, func: Callable[..., Any], *args, **kwargs) -> Any:
    """Call func(*args, **kwargs); on failure log a SideEffectFailure and return None."""
    try:
        return func(*args, **kwargs)
    except Exception as exc:
        failure = SideEffectFailure(name, exc)
        logger.error("%s", failure, exc_info=exc)
        return None
