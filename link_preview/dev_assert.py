"""Developer-error reporting.

Contract violations (querying image data on a state that has none, a record
missing a field it should always carry) are programming errors, not runtime
failures. They are logged loudly and counted, and the caller degrades to a
safe default. They never raise.
"""

from __future__ import annotations

from .logger import get_logger
from .metrics import metrics

_logger = get_logger("dev_assert")


def fail_debug(message: str, *args: object) -> None:
    """Report a developer error.

    Logs at ERROR with a stack trace unless running under ``python -O``.
    """
    metrics.inc("dev_errors")
    _logger.error(message, *args, stack_info=__debug__, stacklevel=2)


def assert_debug(condition: bool, message: str = "Assertion failed.") -> bool:
    """Report a developer error when ``condition`` is false; returns ``condition``."""
    if not condition:
        metrics.inc("dev_errors")
        _logger.error(message, stack_info=__debug__, stacklevel=2)
    return bool(condition)
