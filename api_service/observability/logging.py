from __future__ import annotations

import logging
import queue
import sys
from logging.handlers import QueueHandler, QueueListener
from typing import Any

import structlog

from api_service.config import Settings
from api_service.observability.loki import LokiHandler


_CONFIGURED = False
_LISTENER: QueueListener | None = None
_QUEUE_HANDLER: QueueHandler | None = None


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def build_formatter() -> structlog.stdlib.ProcessorFormatter:
    """JSON formatter shared by every sink: one record per line, ``message`` key."""

    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=_pre_chain(),
    )


def parse_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {name!r}")
    return level


def configure_logging(settings: Settings) -> None:
    """Configure structlog + stdlib logging for JSON output to stdout and Loki.

    Safe to call multiple times (no-op after first call).
    """

    global _CONFIGURED, _LISTENER, _QUEUE_HANDLER
    if _CONFIGURED:
        return

    level = parse_level(settings.log_level)

    structlog.configure(
        processors=[
            *_pre_chain(),
            # Let ProcessorFormatter render JSON for stdlib log records too.
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = build_formatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [handler]

    if settings.loki_enabled:
        # Loki pushes run on the listener thread; the queue handler formats
        # the record before it leaves the request's thread.
        records: queue.Queue[logging.LogRecord] = queue.Queue(-1)
        queue_handler = QueueHandler(records)
        queue_handler.setFormatter(formatter)
        loki = LokiHandler(
            settings.loki_push_url,
            settings.loki_labels,
            timeout=settings.loki_timeout_seconds,
        )
        _LISTENER = QueueListener(records, loki)
        _LISTENER.start()
        _QUEUE_HANDLER = queue_handler
        handlers.append(queue_handler)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(level)

    # Keep uvicorn's own loggers consistent with our handlers.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers = list(handlers)
        logger.propagate = False
        logger.setLevel(level)

    _CONFIGURED = True


def shutdown_logging() -> None:
    """Flush pending Loki pushes, close the sink and detach it from the loggers.

    Stdout logging stays in place. A later ``configure_logging`` starts over.
    """

    global _CONFIGURED, _LISTENER, _QUEUE_HANDLER
    listener, _LISTENER = _LISTENER, None
    queue_handler, _QUEUE_HANDLER = _QUEUE_HANDLER, None
    _CONFIGURED = False

    if queue_handler is not None:
        for name in (None, "uvicorn", "uvicorn.error", "uvicorn.access"):
            logging.getLogger(name).removeHandler(queue_handler)

    if listener is None:
        return
    listener.stop()
    for handler in listener.handlers:
        handler.close()
