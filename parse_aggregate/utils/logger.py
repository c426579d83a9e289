import logging
import sys
from typing import Optional, Union


def setup_logger(name: str, level: Optional[Union[int, str]] = None) -> logging.Logger:
    """
    Sets up a logger with a standard format and console handler.

    Args:
        name (str): The name of the logger (usually __name__).
        level (int | str | None): The logging level. Defaults to settings.LOG_LEVEL.

    Returns:
        logging.Logger: Configured logger instance.
    """
    if level is None:
        # imported here so that config.py may use the logger too
        from parse_aggregate.config import settings
        level = settings.LOG_LEVEL

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Check if the logger already has handlers to avoid duplicate logs
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
