# services/best_effort.py
"""
The one place where failures are allowed to disappear.

Voice feedback and contact auto-learning are enhancements: the on-screen
controls keep working without them. Anything routed through here is logged
and discarded; everything else propagates.
"""

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger("pesamirror.best_effort")


async def best_effort(operation: Awaitable[Any], *, label: str) -> bool:
    """Await `operation`; on failure log it and return False."""
    try:
        await operation
        return True
    except Exception:
        logger.warning(f"[BEST_EFFORT_FAILED] {label}", exc_info=True)
        return False


def best_effort_call(fn: Callable[[], Any], *, label: str) -> bool:
    """Synchronous twin of best_effort, for calls like cancel_speech()."""
    try:
        fn()
        return True
    except Exception:
        logger.warning(f"[BEST_EFFORT_FAILED] {label}", exc_info=True)
        return False
