"""
Timing of the per-utterance hot path (normalization, parsing).

Durations are logged at DEBUG level only while EW_DEBUG=1. The flag is read
on every call because the CLI sets it after this module has been imported.
"""

import functools
import logging
import time
from typing import Callable, ParamSpec, TypeVar

from .debug_log import is_debug_enabled

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)


def timer(func: Callable[P, R]) -> Callable[P, R]:
    """
    Decorator that logs how long each call of ``func`` took.

    Args:
        func: Function to measure

    Returns:
        Wrapped function; without EW_DEBUG=1 it calls straight through
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        if not is_debug_enabled():
            return func(*args, **kwargs)
        started = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            logger.debug(f"{func.__qualname__}: {(time.perf_counter() - started) * 1000:.2f}ms")

    return wrapper
