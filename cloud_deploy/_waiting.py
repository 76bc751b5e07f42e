"""Polling helper for resources that become ready asynchronously."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from cloud_deploy._deploy_errors import WaitTimeoutError

logger = logging.getLogger(__name__)


def wait_until(
    predicate: Callable[[], bool],
    *,
    interval: float,
    timeout: float | None = None,
    description: str = "condition",
    sleep: Callable[[float], object] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Call ``predicate`` until it returns ``True``.

    The predicate signals a terminal failure by raising; the exception
    propagates unchanged.

    Parameters
    ----------
    predicate
        Zero-argument callable polled once per interval.
    interval
        Seconds to sleep between polls.
    timeout
        Maximum seconds to wait, or ``None`` to wait indefinitely.
    description
        Human-readable name used in log lines and the timeout message.
    sleep, clock
        Injectable time sources.

    Returns
    -------
    int
        Number of polls performed.

    Raises
    ------
    WaitTimeoutError
        If ``timeout`` elapses before the predicate succeeds.

    Examples
    --------
    >>> states = iter([False, False, True])
    >>> wait_until(lambda: next(states), interval=0, sleep=lambda _s: None)
    3
    """
    if interval < 0:
        msg = f"interval must not be negative, got {interval}"
        raise ValueError(msg)

    deadline = None if timeout is None else clock() + timeout
    attempts = 0
    while True:
        attempts += 1
        if predicate():
            logger.debug("%s satisfied after %d poll(s)", description, attempts)
            return attempts
        if deadline is not None and clock() + interval > deadline:
            msg = f"Timed out after {timeout:g}s waiting for {description}"
            raise WaitTimeoutError(msg)
        logger.debug("Waiting %gs for %s (poll %d)", interval, description, attempts)
        sleep(interval)
