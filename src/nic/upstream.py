"""Calling blocking SDK clients from the async engine.

The Azure, Kubernetes and Cloudflare clients are synchronous. Each call runs
in the default executor so node pool fan-out can overlap, and any failure
that is not already an engine error is wrapped in UpstreamAPIError with the
original exception chained.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from .errors import NicError, UpstreamAPIError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_upstream(
    kind: str,
    operation: str,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run func(*args, **kwargs) in a worker thread, wrapping client failures.

    Args:
        kind: Resource kind for error messages ("network", "dns-record").
        operation: Operation name for error messages ("create_subnet").
        func: Blocking client callable.

    Raises:
        UpstreamAPIError: If the client raised anything other than a NicError.
    """
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
    except NicError:
        raise
    except Exception as e:
        logger.warning(
            "Upstream call failed",
            extra={"kind": kind, "operation": operation, "error": str(e)},
        )
        raise UpstreamAPIError(kind, operation, e) from e
