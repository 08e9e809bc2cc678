"""Failure handling for destroy steps.

In strict mode the first failing step aborts teardown. In force mode every
step runs and failures are collected per resource; a later successful step
for the same resource (an orphan sweep retry, say) clears its failure.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from .errors import DestroyError, NicError, ResourceFailure
from .status import RunContext, StatusLevel
from .upstream import call_upstream

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Teardown:
    """Runs delete steps under strict or force semantics.

    Args:
        ctx: Run context for status events.
        force: Continue past failures and report them together at the end.
    """

    def __init__(self, ctx: RunContext, force: bool = False) -> None:
        self.ctx = ctx
        self.force = force
        self._failures: dict[tuple[str, str], ResourceFailure] = {}

    @property
    def failures(self) -> list[ResourceFailure]:
        return list(self._failures.values())

    def _fail(self, kind: str, identity: str, error: NicError) -> None:
        failure = ResourceFailure(kind, identity, error)
        logger.warning(
            "Destroy step failed",
            extra={"kind": kind, "identity": identity, "error": str(error), "force": self.force},
        )
        self.ctx.status(
            StatusLevel.WARNING if self.force else StatusLevel.ERROR,
            f"Failed to delete {kind} {identity}: {error}",
            resource=kind,
            action="delete",
            identity=identity,
        )
        if not self.force:
            raise DestroyError([failure]) from error
        self._failures[(kind, identity)] = failure

    async def delete(
        self,
        kind: str,
        identity: str,
        func: Callable[..., Any],
        *args: Any,
    ) -> bool:
        """Run one blocking delete call. Returns True when it succeeded."""
        self.ctx.status(
            StatusLevel.PROGRESS,
            f"Deleting {kind} {identity}",
            resource=kind,
            action="delete",
            identity=identity,
        )
        try:
            await call_upstream(kind, f"delete {identity}", func, *args)
        except NicError as e:
            self._fail(kind, identity, e)
            return False
        self._failures.pop((kind, identity), None)
        logger.info("Deleted resource", extra={"kind": kind, "identity": identity})
        return True

    async def discover(
        self, kind: str, identity: str, lookup: Callable[[], Awaitable[T]], default: T
    ) -> T:
        """Run a discovery step; in force mode a failure yields default."""
        try:
            result = await lookup()
        except NicError as e:
            self._fail(kind, identity, e)
            return default
        self._failures.pop((kind, identity), None)
        return result

    @contextmanager
    def forced(self) -> Iterator[None]:
        """Collect failures instead of raising for the duration of the block."""
        previous = self.force
        self.force = True
        try:
            yield
        finally:
            self.force = previous

    def raise_for_failures(self) -> None:
        if self._failures:
            raise DestroyError(self.failures)
