"""Logging setup utilities for termproxy.

Configures logging for the entire application based on the logging
configuration settings, and tags per-session log lines with the
session and target they belong to.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping

from termproxy.config.settings import LoggingConfig


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure logging for the termproxy application.

    Sets up the ``termproxy`` logger with the specified level, format,
    and optional file handler. Calling it again replaces the handlers
    installed by the previous call.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
    """
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger("termproxy")
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.info("Logging initialized at %s level", config.level)


class SessionLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with ``[session_id] [target]``."""

    def __init__(self, logger: logging.Logger, session_id: str, target: str) -> None:
        super().__init__(logger, {"session_id": session_id, "target": target})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['session_id']}] [{self.extra['target']}] {msg}", kwargs
