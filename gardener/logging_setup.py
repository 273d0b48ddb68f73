"""
Logging Configuration
=====================

Configures structlog on top of the standard logging module. Station modules
log through structlog.get_logger(__name__) with key/value context.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.types import Processor


def _make_handler(output: str, file_path: Optional[str]) -> logging.Handler:
    if output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if output == "stderr":
        return logging.StreamHandler(sys.stderr)
    if output == "file":
        return logging.FileHandler(file_path or "garden-station.log")
    raise ValueError(f"Invalid log output {output!r}")


def configure_logging(level: str = "info", output: str = "stdout",
                      fmt: str = "text", file_path: Optional[str] = None) -> logging.Handler:
    """Install a single handler on the root logger and route structlog through it.

    Args:
        level: debug, info, warn(ing) or error
        output: stdout, stderr or file
        fmt: text (key=value console lines) or json (one object per line)
        file_path: Log file when output is "file"

    Returns:
        The installed handler
    """
    if level.lower() == "warn":
        level = "warning"
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    renderer: Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    elif fmt == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        raise ValueError(f"Invalid log format {fmt!r}")

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    handler = _make_handler(output, file_path)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            timestamper,
        ],
    ))

    root_logger = logging.getLogger()
    for old in root_logger.handlers[:]:
        root_logger.removeHandler(old)
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return handler
