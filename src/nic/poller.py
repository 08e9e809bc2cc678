"""Readiness wait primitive.

Every step that waits for an external system to converge (cluster nodes,
managed control plane, deployments, load balancer endpoints) goes through
wait_until with its own check function.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from .errors import PollCancelledError, PollTimeoutError
from .status import RunContext

logger = logging.getLogger(__name__)

Check = Callable[[], bool]


async def wait_until(
    check: Check,
    interval: float,
    timeout: float,
    ctx: RunContext,
    description: str = "condition",
) -> float:
    """Block until check() returns True, the timeout elapses or the run is cancelled.

    The check runs once immediately, then once per interval. It is a blocking
    callable executed in a worker thread and must bound its own work (one API
    call, for example). Exceptions raised by the check propagate unchanged.

    Args:
        check: Zero-argument callable returning True once the condition holds.
        interval: Seconds between checks.
        timeout: Overall deadline in seconds.
        ctx: Run context whose cancel event aborts the wait.
        description: Human readable name of the condition for errors and logs.

    Returns:
        Seconds elapsed until the condition held.

    Raises:
        PollTimeoutError: The deadline passed without the condition holding.
        PollCancelledError: The run was cancelled before the deadline.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    if timeout <= 0:
        raise ValueError("timeout must be positive")

    start = time.monotonic()
    deadline = start + timeout
    attempt = 0

    while True:
        if ctx.cancelled:
            raise PollCancelledError(time.monotonic() - start, timeout, description)

        attempt += 1
        if await asyncio.to_thread(check):
            elapsed = time.monotonic() - start
            logger.debug(
                "Condition satisfied",
                extra={"condition": description, "attempts": attempt, "elapsed": elapsed},
            )
            return elapsed

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise PollTimeoutError(time.monotonic() - start, timeout, description)

        # Sleep until the next tick, waking early on cancellation
        try:
            await asyncio.wait_for(ctx.cancel_event.wait(), timeout=min(interval, remaining))
        except TimeoutError:
            pass

        if ctx.cancelled:
            raise PollCancelledError(time.monotonic() - start, timeout, description)
