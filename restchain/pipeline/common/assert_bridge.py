"""Run evaluation code while preserving the original exception.

Expectation evaluation and dynamic invocation may wrap the real failure in
EvaluationRuntimeException, InvocationTargetException or
UndeclaredThrowableException. This bridge peels those containers off and
re-raises the underlying exception object itself, so that callers matching on
the failure type (``pytest.raises(AssertionError)``) are unaffected by the
machinery in between.

Typical usage:

    run_with_unwrap(lambda: spec.evaluate(response))

Only the wrapper kinds listed in WRAPPER_EXCEPTIONS are unwrapped. Any other
exception with a ``__cause__`` is a real failure and is re-raised as is.
"""

from collections.abc import Callable
from typing import TypeVar

from restchain.pipeline.common.exceptions import (
    EvaluationRuntimeException,
    InvocationTargetException,
    UndeclaredThrowableException,
)

T = TypeVar("T")

WRAPPER_EXCEPTIONS: tuple[type[BaseException], ...] = (
    EvaluationRuntimeException,
    InvocationTargetException,
    UndeclaredThrowableException,
)


def unwrap(error: BaseException) -> BaseException:
    """Recursively unwrap known wrapper types until a real cause is found.

    Stops when the current error has no cause, when its cause is itself,
    when it is not a recognized wrapper, or when the walk comes back to an
    error it has already visited.

    Args:
        error: The exception to unwrap.

    Returns:
        The innermost exception reachable through recognized wrappers.
    """
    seen: set[int] = set()
    current = error
    while True:
        seen.add(id(current))
        cause = current.__cause__
        if cause is None or cause is current:
            return current
        if not isinstance(current, WRAPPER_EXCEPTIONS):
            return current
        if id(cause) in seen:
            return current
        current = cause


def run_with_unwrap(operation: Callable[[], T]) -> T:
    """Execute operation, re-raising the unwrapped cause of any failure.

    Args:
        operation: Zero-argument callable, typically an evaluation step.

    Returns:
        Whatever operation returns.

    Raises:
        The exception raised by operation, with recognized wrappers removed.
        The raised object is the original one, not a copy.
    """
    try:
        return operation()
    except Exception as e:
        unwrapped = unwrap(e)
        if unwrapped is e:
            raise
    # Raised outside the except block so the wrapper is not attached as
    # __context__ of the original exception.
    raise unwrapped
