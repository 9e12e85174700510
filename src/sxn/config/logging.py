"""structlog configuration for sxn.

Two output modes, both on stderr:
- Human (default): console renderer, colored on a TTY
- JSON (--log-json): one JSON object per line

Security audit events (``file.copy``, ``command.exec``...) go through the
same pipeline as every other log line. Events emitted from a rule worker
thread carry a ``worker`` field naming the thread.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Any

import structlog

LOGGER_NAME = "sxn"
RULE_WORKER_PREFIX = "sxn-rule"


def add_rule_worker(
    _logger: Any, _method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Tag events logged from a rule worker thread with the thread name."""
    name = threading.current_thread().name
    if name.startswith(RULE_WORKER_PREFIX):
        event_dict.setdefault("worker", name)
    return event_dict


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
) -> None:
    """Configure structlog processors and output routing.

    Args:
        verbose: Let the ``sxn`` logger emit DEBUG and INFO. When False,
            only WARNING and above are shown.
        log_json: Use the JSON renderer instead of the console renderer.
    """
    sxn_level = logging.DEBUG if verbose else logging.WARNING

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_rule_worker,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger(LOGGER_NAME).setLevel(sxn_level)
