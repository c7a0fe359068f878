import time
from functools import wraps
from typing import Callable, Tuple, Type, TypeVar, Any

from agentic_intake.core.errors import ModelCallError, DecisionParseError
from agentic_intake.core.logging import get_logger

_log = get_logger("retry")

T = TypeVar("T")

RETRYABLE: Tuple[Type[BaseException], ...] = (ModelCallError, DecisionParseError)

def backoff_delays(attempts: int, base_delay: float) -> list[float]:
    """Delays slept between attempts: base, 2*base, 4*base, ..."""
    return [base_delay * (2 ** i) for i in range(max(attempts - 1, 0))]

def retry_call(
    fn: Callable[..., T],
    *args: Any,
    attempts: int = 3,
    base_delay: float = 0.5,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    delays = backoff_delays(attempts, base_delay)
    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except retry_on as e:
            if attempt == attempts:
                _log.error(f"giving up after {attempts} attempts: {e}", extra={"stage": "retry.exhausted", "attempt": attempt})
                raise
            delay = delays[attempt - 1]
            _log.warning(f"attempt failed, retrying in {delay:.2f}s: {e}", extra={"stage": "retry.wait", "attempt": attempt})
            sleep(delay)
    raise AssertionError("unreachable")

def retrying(
    fn: Callable[..., T],
    *,
    attempts: int = 3,
    base_delay: float = 0.5,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[..., T]:
    """Wrap a single I/O call so every invocation gets bounded exponential backoff."""
    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        return retry_call(fn, *args, attempts=attempts, base_delay=base_delay, retry_on=retry_on, sleep=sleep, **kwargs)
    return wrapper
