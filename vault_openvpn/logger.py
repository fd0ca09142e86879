"""
Centralized logging setup and configuration.

Provides structured, colored logging for certificate lifecycle operations.
Log output goes to stderr so that rendered configuration written to stdout
can be piped straight into a file.
"""

import logging
import sys
from typing import Any, Dict, Optional, TextIO


LOGGER_NAME = "VaultOpenVPN"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ColoredFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to log output.

    Colors are only applied when output is to a terminal. Structured fields
    attached by StructuredLogger.event() are appended as key=value pairs.
    """

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",      # Reset
    }

    def __init__(
        self,
        fmt: Optional[str] = None,
        use_colors: bool = True,
        stream: Optional[TextIO] = None,
    ):
        """
        Initialize the formatter.

        Args:
            fmt: Log message format string
            use_colors: Whether to use colors in output
            stream: Stream the handler writes to, used for the TTY check
        """
        super().__init__(fmt or "%(asctime)s [%(levelname)s] %(message)s")
        stream = stream or sys.stderr
        self.use_colors = use_colors and stream.isatty()

    @staticmethod
    def format_fields(fields: Dict[str, Any]) -> str:
        """Render structured fields in a stable key=value form."""
        return " ".join(f"{key}={value}" for key, value in sorted(fields.items()))

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record with optional colors.

        Args:
            record: Log record to format

        Returns:
            Formatted log message
        """
        # Save original values
        original_levelname = record.levelname
        original_msg = record.msg

        fields = getattr(record, "fields", None)
        if fields:
            record.msg = f"{record.msg} {self.format_fields(fields)}"

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            reset = self.COLORS["RESET"]

            record.levelname = f"{color}{record.levelname}{reset}"

            if original_levelname in ("ERROR", "CRITICAL", "WARNING"):
                record.msg = f"{color}{record.msg}{reset}"

        result = super().format(record)

        # Restore original values
        record.levelname = original_levelname
        record.msg = original_msg

        return result


class StructuredLogger(logging.Logger):
    """
    Logger with helpers for lifecycle events and failures.
    """

    def event(self, message: str, **fields: Any) -> None:
        """
        Log an INFO record carrying structured fields.

        The fields are available to handlers as ``record.fields``.

        Args:
            message: Event message
            **fields: Structured key/value data for the event
        """
        self.info(message, extra={"fields": fields})

    def failure(self, message: str) -> None:
        """
        Log a failure message (ERROR level with special formatting).

        Args:
            message: Failure message
        """
        self.error(f"[FAIL] {message}")


# Global logger instance
_logger: Optional[StructuredLogger] = None


def parse_log_level(name: str) -> int:
    """
    Translate a level name (debug, info, warning, error) to a logging level.

    Raises:
        ValueError: If the level name is unknown
    """
    try:
        return LOG_LEVELS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown log level '{name}'. Must be one of: {', '.join(LOG_LEVELS)}"
        )


def setup_logger(
    name: str = LOGGER_NAME,
    level: int = logging.INFO,
    use_colors: bool = True,
    log_file: Optional[str] = None,
) -> StructuredLogger:
    """
    Setup and configure the global logger.

    Args:
        name: Logger name
        level: Minimum log level
        use_colors: Enable colored output
        log_file: Optional file path for log output

    Returns:
        Configured StructuredLogger instance
    """
    global _logger

    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logger.__class__ = StructuredLogger

    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        ColoredFormatter(use_colors=use_colors, stream=sys.stderr)
    )
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(ColoredFormatter(use_colors=False))
        logger.addHandler(file_handler)

    _logger = logger
    return logger


def get_logger() -> StructuredLogger:
    """
    Get the global logger instance.

    Returns:
        The configured StructuredLogger instance
    """
    global _logger

    if _logger is None:
        _logger = setup_logger()

    return _logger
