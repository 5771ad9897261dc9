"""Bounded retry with doubling backoff, no jitter."""

import logging
import time

logger = logging.getLogger(__name__)


def with_retry(
    fn,
    max_attempts=3,
    backoff_base=2.0,
    backoff_max=30.0,
    retry_on=(Exception,),
    logger=logger,
    label="call",
):
    """Call fn() and retry on the exception types in *retry_on*.

    The delay before retry n (1-based) is backoff_base ** (n - 1) seconds,
    i.e. 1s, 2s, 4s with the default base. Exceptions outside *retry_on*
    propagate immediately. Returns the result of fn() on success, or
    re-raises the last exception after max_attempts failures.
    """
    for attempt in range(max_attempts):
        try:
            return fn()
        except retry_on as exc:
            if attempt == max_attempts - 1:
                raise
            delay = min(backoff_base ** attempt, backoff_max)
            if logger:
                logger.warning(
                    "%s attempt %d/%d failed: %s, retrying in %.0fs",
                    label, attempt + 1, max_attempts, exc, delay,
                )
            time.sleep(delay)
