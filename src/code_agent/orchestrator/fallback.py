"""Two-tier capability selection: try the primary, fall back on capability failure."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from code_agent.orchestrator.errors import CapabilityError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_fallback(
    primary: Callable[[], T],
    fallback: Callable[[], T],
    *,
    operation: str,
) -> T:
    """Run ``primary``; on ``CapabilityError`` log a warning and return ``fallback()``.

    Only capability failures are recovered. Programming errors and store failures
    propagate unchanged.
    """

    try:
        return primary()
    except CapabilityError as error:
        logger.warning("%s failed, using fallback: %s", operation, error)
        return fallback()
