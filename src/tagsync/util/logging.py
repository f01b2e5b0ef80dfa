import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from tagsync.util.config import LoggingConfig


class ColorFormatter(logging.Formatter):
    """
    Custom formatter to add color coding to specific parts of log lines for console output.
    Also supports fixed-width formatting for level names and locations.
    """

    COLOR_CODES = {
        "DEBUG": "\033[94m",  # Blue
        "INFO": "\033[92m",  # Green
        "WARNING": "\033[93m",  # Yellow
        "ERROR": "\033[91m",  # Red
        "CRITICAL": "\033[95m",  # Magenta
    }
    RESET_CODE = "\033[0m"
    BOLD_CODE = "\033[1m"
    DIM_CODE = "\033[2m"  # Toned-down color for timestamps

    LEVEL_WIDTH = 8  # Enough for "CRITICAL"
    LOCATION_WIDTH = 22  # Fits "[reconciler.py:1234]"

    def __init__(self, fmt=None, datefmt=None, style="%", use_color=True):
        super().__init__(fmt, datefmt, style)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level_name = record.levelname.ljust(self.LEVEL_WIDTH)
        location = f"[{record.filename}:{record.lineno}]".ljust(self.LOCATION_WIDTH)

        if self.use_color:
            log_color = self.COLOR_CODES.get(record.levelname, self.RESET_CODE)
            levelname = f"{self.BOLD_CODE}{log_color}{level_name}{self.RESET_CODE}"
            timestamp = f"{self.DIM_CODE}{self.formatTime(record)}{self.RESET_CODE}"
            location = f"{self.BOLD_CODE}{self.DIM_CODE}{location}{self.RESET_CODE}"
        else:
            # Plain text formatting for file logs
            levelname = level_name
            timestamp = self.formatTime(record)

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{timestamp} {levelname} {location} {message}"


def configure_logging(
    config: Optional[LoggingConfig] = None,
    log_level: Optional[str] = None,
    log_to_file: bool = True,
) -> logging.Logger:
    """
    Configure the root logger with a colored console handler and a plain
    timestamped log file.
    """
    if config is None:
        config = LoggingConfig()
    if log_level is None:
        log_level = config.level
    log_level = log_level.upper()

    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Avoid stacking handlers when called more than once
    for handler in list(logger.handlers):
        if getattr(handler, "_tagsync_handler", False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(config.console_level if log_level != "DEBUG" else "DEBUG")
    # Escape codes only when the console is a terminal
    use_color = bool(getattr(console_handler.stream, "isatty", lambda: False)())
    console_handler.setFormatter(ColorFormatter(config.format, use_color=use_color))
    console_handler._tagsync_handler = True
    logger.addHandler(console_handler)

    if log_to_file:
        logs_dir = Path(config.directory)
        logs_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        log_file = logs_dir / f"tagsync_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(config.file_level)
        file_handler.setFormatter(ColorFormatter(config.format, use_color=False))
        file_handler._tagsync_handler = True
        logger.addHandler(file_handler)
        logger.debug(f"Logging initialized. Log file: {log_file}")

    return logger
