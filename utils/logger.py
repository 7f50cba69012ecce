# This module contains a custom formatter and logger setup for the social core.
import logging
from typing import Optional

APP_LOGGER_NAME = "social"


class CustomFormatter(logging.Formatter):
    """
    A custom formatter for logging messages with different log levels.

    Attributes:
        grey (str): ANSI escape sequence for grey color.
        yellow (str): ANSI escape sequence for yellow color.
        red (str): ANSI escape sequence for red color.
        bold_red (str): ANSI escape sequence for bold red color.
        reset (str): ANSI escape sequence to reset color.
        format (str): The log message format.
        FORMATS (dict): A dictionary mapping log levels to their respective log message formats.

    Usage:
        formatter = CustomFormatter()
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
    """
    grey = "\x1b[37;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    dark_grey = "\x1b[30;1m"
    reset = "\x1b[0m"
    format = '[%(levelname)s] %(asctime)s - %(name)s - %(message)s'

    FORMATS = {
        logging.DEBUG: dark_grey + format + reset,
        logging.INFO: grey + format + reset,
        logging.WARNING: yellow + format + reset,
        logging.ERROR: red + format + reset,
        logging.CRITICAL: bold_red + format + reset
    }

    def format(self, record):
        """
        Formats the log record based on its log level.

        Args:
            record (logging.LogRecord): The log record to be formatted.

        Returns:
            str: The formatted log message.
        """
        log_fmt = self.FORMATS.get(record.levelno)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def _app_logger() -> logging.Logger:
    log = logging.getLogger(APP_LOGGER_NAME)
    if not any(getattr(h, "_social_console", False) for h in log.handlers):
        ch = logging.StreamHandler()
        ch.setLevel(logging.DEBUG)
        ch.setFormatter(CustomFormatter())
        ch._social_console = True
        log.addHandler(ch)
        log.setLevel(logging.INFO)
    return log


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger that writes through the application console handler.

    Module loggers are children of the "social" logger, so records propagate
    to its handlers as well as to the root logger.

    Args:
        name: Usually the calling module's __name__.

    Returns:
        logging.Logger: The configured logger.
    """
    parent = _app_logger()
    if not name:
        return parent
    return parent.getChild(name)


def setup_file_logging(log_file: str, level: int = logging.INFO) -> logging.Handler:
    """
    Add a plain-text file handler to the application logger.

    Args:
        log_file: Path of the log file to append to.
        level: Minimum level written to the file and to the console.

    Returns:
        logging.Handler: The file handler that was installed.
    """
    log = _app_logger()
    log.setLevel(level)
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter('[%(levelname)s] %(asctime)s - %(name)s - %(message)s'))
    log.addHandler(fh)
    return fh
