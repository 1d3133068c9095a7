"""Decorator implementations for monitoring and other cross-cutting concerns."""
import logging
import time
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from mediastream.core.exceptions import MediaStreamException
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

AsyncF = TypeVar('AsyncF', bound=Callable[..., Awaitable[Any]])


def async_performance_monitor(
    operation_name: Optional[str] = None,
    slow_threshold: float = 1.0,
    summarize: Optional[Callable[[Any], Any]] = None
):
    """
    Decorator timing a service coroutine and flagging slow calls.

    Args:
        operation_name: Label used in log records, defaults to module.function
        slow_threshold: Seconds after which a successful call is logged as slow
        summarize: Optional callable reducing the result to something loggable
    """

    def decorator(func: AsyncF) -> AsyncF:
        op_name = operation_name or f"{func.__module__}.{func.__name__}"

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except MediaStreamException as e:
                # Domain failures are reported by the HTTP error handlers
                elapsed = time.perf_counter() - started
                logger.info(
                    f"{op_name} failed with {e.error_code} after {elapsed:.3f}s",
                    extra={"error_details": e.to_dict(), "execution_time": elapsed}
                )
                raise
            except Exception as e:
                elapsed = time.perf_counter() - started
                logger.error(
                    f"{op_name} crashed after {elapsed:.3f}s: {type(e).__name__}: {e}",
                    extra={"execution_time": elapsed},
                    exc_info=True
                )
                raise

            elapsed = time.perf_counter() - started
            summary = summarize(result) if summarize else None
            if elapsed > slow_threshold:
                logger.warning(f"Slow operation {op_name}: {elapsed:.3f}s {summary or ''}".rstrip())
            else:
                logger.debug(f"{op_name} took {elapsed:.4f}s {summary or ''}".rstrip())
            return result

        return wrapper  # type: ignore

    return decorator
