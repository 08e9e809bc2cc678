"""Progress events and the per-run context.

A RunContext is threaded explicitly through every operation. It carries the
optional status sink, the cancellation event and the runtime configuration.
Status events are a side channel: emitting them never changes control flow,
and a context without a sink behaves exactly like one with a sink.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from .config import RuntimeConfig

logger = logging.getLogger(__name__)


class StatusLevel(str, Enum):
    """Severity of a progress event."""

    INFO = "info"
    PROGRESS = "progress"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class StatusUpdate:
    """A single structured progress event."""

    level: StatusLevel
    message: str
    resource: str = ""
    action: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class StatusSink(Protocol):
    """Receives progress events."""

    def emit(self, update: StatusUpdate) -> None: ...


_LEVEL_TO_LOGGING = {
    StatusLevel.INFO: logging.INFO,
    StatusLevel.PROGRESS: logging.INFO,
    StatusLevel.SUCCESS: logging.INFO,
    StatusLevel.WARNING: logging.WARNING,
    StatusLevel.ERROR: logging.ERROR,
}


class LoggingStatusSink:
    """Forwards progress events to structured logging."""

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    def emit(self, update: StatusUpdate) -> None:
        self._logger.log(
            _LEVEL_TO_LOGGING[update.level],
            update.message,
            extra={
                "status": update.level.value,
                "resource": update.resource,
                "action": update.action,
                **update.metadata,
            },
        )


class RecordingStatusSink:
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.updates: list[StatusUpdate] = []

    def emit(self, update: StatusUpdate) -> None:
        self.updates.append(update)

    def by_level(self, level: StatusLevel) -> list[StatusUpdate]:
        return [u for u in self.updates if u.level == level]


@dataclass
class RunContext:
    """Per-invocation handles shared by every step of a run."""

    sink: StatusSink | None = None
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def status(
        self,
        level: StatusLevel,
        message: str,
        resource: str = "",
        action: str = "",
        **metadata: Any,
    ) -> None:
        """Emit a progress event if a sink is attached."""
        if self.sink is None:
            return
        self.sink.emit(
            StatusUpdate(
                level=level,
                message=message,
                resource=resource,
                action=action,
                metadata=metadata,
            )
        )
