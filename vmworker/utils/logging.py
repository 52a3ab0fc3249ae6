"""Logging configuration for the VM pool service."""

# Standard library imports
import logging
import logging.handlers
import sys
from pathlib import Path

# Third-party imports
import structlog

# Local application imports
from .._version import __version__
from ..config import settings
from ..config.logging import LoggingConfig


def setup_logging() -> None:
    """Configure structured logging for the application."""
    log_config = settings.logging

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_config.level_number,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        service_context(log_config.service_name),
    ]

    if log_config.format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if log_config.file:
        setup_file_logging(log_config)

    configure_third_party_loggers(log_config)


def setup_file_logging(log_config: LoggingConfig) -> None:
    """Setup file-based logging with rotation."""
    if not log_config.file:
        return

    log_file_path = Path(log_config.file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_file_path,
        maxBytes=log_config.max_size_mb * 1024 * 1024,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )

    if log_config.format.lower() == "json":
        formatter = logging.Formatter("%(message)s")
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    file_handler.setFormatter(formatter)
    file_handler.setLevel(log_config.level_number)

    logging.getLogger().addHandler(file_handler)


def configure_third_party_loggers(log_config: LoggingConfig) -> None:
    """Configure logging levels for third-party libraries."""
    for name in log_config.quiet_logger_names:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_config.enable_access_logs:
        logging.getLogger("uvicorn.access").setLevel(logging.INFO)


def service_context(service_name: str):
    """Build a processor that adds service context to log entries."""

    def add_service_context(logger, method_name, event_dict):
        event_dict["service"] = service_name
        event_dict["version"] = __version__
        return event_dict

    return add_service_context
