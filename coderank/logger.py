"""Structured logging setup for processes running the engine.

Modules only call ``structlog.get_logger()``. Output is configured once at
startup by :func:`setup_logging`, which ``CodeSearchEngine.from_settings``
calls with the configured service name and level. Entries carry
``{timestamp, level, service, event, ...}`` plus any bound context such as
the index build's file count.
"""

from __future__ import annotations

import logging
import queue
import sys
from logging.handlers import QueueHandler, QueueListener

import structlog

_listener: QueueListener | None = None

_STREAMS = ("stdout", "stderr")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=False)
    raise ValueError(f"unknown log format {log_format!r}, expected 'json' or 'console'")


def setup_logging(
    service: str = "coderank",
    level: str = "info",
    log_format: str = "json",
    stream: str = "stdout",
) -> None:
    """Route structlog through stdlib logging with non-blocking output.

    Records are queued by a ``QueueHandler`` and written by a
    ``QueueListener`` thread, so a build logging from the event loop never
    blocks on I/O. Use ``stream="stderr"`` when stdout carries a protocol.
    Calling this again replaces the previous configuration.
    """
    renderer = _renderer(log_format)
    if stream not in _STREAMS:
        raise ValueError(f"unknown log stream {stream!r}, expected 'stdout' or 'stderr'")
    log_level = getattr(logging, level.upper(), logging.INFO)

    stop_logging()

    # resolved at call time so redirected streams are honoured
    output = sys.stdout if stream == "stdout" else sys.stderr
    handler = logging.StreamHandler(output)
    handler.setLevel(log_level)
    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=10_000)

    global _listener
    _listener = QueueListener(log_queue, handler, respect_handler_level=True)
    _listener.start()

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(QueueHandler(log_queue))
    root.setLevel(log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _add_service(service),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def stop_logging() -> None:
    """Flush queued records and stop the listener thread. Safe to call twice."""
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None


def _add_service(service: str) -> structlog.types.Processor:
    def processor(
        _logger: structlog.types.WrappedLogger,
        _method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return processor
