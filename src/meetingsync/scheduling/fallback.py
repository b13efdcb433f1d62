"""Safe-result policy for read-the-world checks.

Capacity and conflict checks must not block users on an infrastructure
hiccup. Each degradable operation declares its default once with
@degrade_to; any exception is logged as a warning and the default returned.
The creation path does not use this and surfaces failures as-is.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def degrade_to(
    default_factory: Callable[[], T], event: str
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Wrap an async callable so failures return default_factory().

    Args:
        default_factory: Builds a fresh default per failure (e.g. list,
            CapacityResult.unavailable).
        event: structlog event name logged on failure.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                logger.warning(event, error=str(exc), operation=func.__qualname__, exc_info=True)
                return default_factory()

        return wrapper

    return decorator
