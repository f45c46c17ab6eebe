"""
Logging configuration for derivative media.

Sets up structured logging with console and optional file output.
"""

import logging
import os
from logging import FileHandler
from typing import Any, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

# Initialize console for rich output
console = Console()

def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> Any:
    """
    Setup logging configurations for console and, optionally, file output.

    Args:
        level: Minimum log level
        log_file: Optional path of a plain-text log file

    Returns:
        The configured structlog logger
    """
    # Configure structlog to integrate with standard logging
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S.%f", utc=False),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(min_level=level),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
    )

    # Console Handler (using Rich for pretty output)
    rich_console_handler = RichHandler(console=console, rich_tracebacks=True, markup=False, show_path=False)
    rich_console_handler.setFormatter(formatter)
    rich_console_handler.setLevel(level)

    std_root_logger = logging.getLogger()
    for handler in list(std_root_logger.handlers):
        if getattr(handler, '_derivative_media', False):
            std_root_logger.removeHandler(handler)
    rich_console_handler._derivative_media = True
    std_root_logger.addHandler(rich_console_handler)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        # File Handler (plain text)
        file_log_handler = FileHandler(log_file, mode='a', encoding='utf-8')
        file_log_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.KeyValueRenderer(
                key_order=['timestamp', 'level', 'logger', 'event'],
            ),
        ))
        file_log_handler.setLevel(level)
        file_log_handler._derivative_media = True
        std_root_logger.addHandler(file_log_handler)

    std_root_logger.setLevel(level)

    # Create a logger instance using structlog
    logger = structlog.get_logger(__name__)
    logger.debug("Logging configured", log_file=log_file)

    return logger
