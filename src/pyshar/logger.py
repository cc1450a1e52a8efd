"""Centralized logging configuration for pyshar."""

import logging
import sys
from typing import Optional

# Create logger
logger = logging.getLogger('pyshar')
logger.addHandler(logging.NullHandler())

# Create formatter
formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


def configure_logging(level: int = logging.INFO, stream=None) -> logging.Logger:
    """Attach a console handler to the pyshar logger.

    Parameters
    ----------
    level : int
        Logging level of the console handler
    stream : file-like, optional
        Output stream, defaults to ``sys.stdout``

    Returns
    -------
    logging.Logger
        Configured package logger
    """
    for handler in list(logger.handlers):
        if getattr(handler, '_pyshar_console', False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler._pyshar_console = True

    logger.addHandler(console_handler)
    logger.setLevel(min(level, logger.level or level))
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance.

    Parameters
    ----------
    name : str, optional
        Logger name (typically __name__). If None, returns root package logger.

    Returns
    -------
    logging.Logger
        Logger instance below the ``pyshar`` namespace
    """
    if name:
        if name == 'pyshar' or name.startswith('pyshar.'):
            return logging.getLogger(name)
        return logging.getLogger(f'pyshar.{name}')
    return logger


class ProgressReporter:
    """Print a transient progress counter, one line rewritten in place.

    Instances are used as ``progress(completed, total)`` callbacks.
    """

    def __init__(self, stream=None, label: str = 'Progress'):
        self.stream = stream if stream is not None else sys.stderr
        self.label = label

    def __call__(self, completed: int, total: int) -> None:
        self.stream.write(f"\r> {self.label}: {completed}/{total}\t\t")
        if completed >= total:
            self.stream.write("\n")
        self.stream.flush()
