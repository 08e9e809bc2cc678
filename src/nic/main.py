"""Process entry point: logging setup and run supervision.

Every command runs as one asyncio task. SIGINT and SIGTERM set the run
context's cancel event so readiness waits stop at their next tick.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from .config import ConfigurationError
from .errors import NicError, PollCancelledError
from .status import RunContext

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130

# LogRecord attributes that are not user supplied extra fields
_RESERVED_RECORD_KEYS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    )
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_format: str = "json", verbose: bool = False) -> None:
    """Configure root logging on stdout.

    Args:
        log_format: "json" for structured output, "text" for a plain format.
        verbose: Log at DEBUG instead of INFO.
    """
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "text":
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Reduce noise from SDKs
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


async def supervise(operation: Callable[[], Awaitable[Any]], ctx: RunContext) -> int:
    """Run one operation with signal handling and map its outcome to an exit code."""
    logger = logging.getLogger(__name__)
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.warning("Received signal, cancelling", extra={"signal": sig.name})
        ctx.cancel()

    installed = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported outside the main thread or on some platforms
            pass

    try:
        await operation()
    except PollCancelledError as e:
        logger.warning("Operation cancelled", extra={"error": str(e)})
        return EXIT_CANCELLED
    except NicError as e:
        if ctx.cancelled:
            logger.warning("Operation cancelled", extra={"error": str(e)})
            return EXIT_CANCELLED
        logger.error(str(e), extra={"error_type": type(e).__name__})
        return EXIT_FAILURE
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return EXIT_FAILURE
    except Exception as e:
        logger.exception("Unexpected error", extra={"error": str(e)})
        return EXIT_FAILURE
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)

    if ctx.cancelled:
        return EXIT_CANCELLED
    return EXIT_OK


def run() -> None:
    """Entry point for the nic console script."""
    from .cli import cli

    cli()
