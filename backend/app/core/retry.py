from __future__ import annotations

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

R = TypeVar("R")


def call_with_retry(
    func: Callable[[], R],
    *,
    max_attempts: int = 3,
    backoff_seconds: float = 0.25,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation: str = "",
) -> R:
    """
    Call ``func`` with exponential backoff between failed attempts.

    Only use this for idempotent reads; mutating processor calls are made
    exactly once per idempotency key.
    """
    name = operation or getattr(func, "__name__", "call")
    last_exception: BaseException | None = None

    for attempt in range(max_attempts):
        try:
            return func()
        except retry_on as e:
            last_exception = e
            if attempt < max_attempts - 1:
                wait_time = backoff_seconds * (2**attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{max_attempts} failed for {name}: {str(e)}. "
                    f"Retrying in {wait_time}s..."
                )
                time.sleep(wait_time)
            else:
                logger.error(f"All {max_attempts} attempts failed for {name}: {str(e)}")

    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Retry failed without capturing exception")
