"""
Logging helpers for the reconstruction package.

Every module obtains its logger through get_logger() so that all output lives
under the 'SceneReconstruction' namespace and can be configured in one place.
"""

import logging
import sys
from typing import Optional, Union


ROOT_LOGGER_NAME = "SceneReconstruction"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"


def _qualified_name(name: str) -> str:
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return name
    return f"{ROOT_LOGGER_NAME}.{name}"


def setup_logger(name: str,
                 level: Union[int, str] = logging.INFO,
                 log_file: Optional[str] = None,
                 console: bool = True,
                 fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    """
    Create (or reconfigure) a named logger

    Args:
        name: Component name, e.g. 'pipeline'
        level: Logging level
        log_file: Optional file that receives a copy of every record
        console: Attach a stderr handler
        fmt: Record format

    Returns:
        Configured logger
    """
    logger = logging.getLogger(_qualified_name(name))
    logger.setLevel(level)

    # Drop handlers from previous calls so records are not duplicated
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt, datefmt=DEFAULT_DATE_FORMAT)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger in the package namespace without touching its handlers"""
    return logging.getLogger(_qualified_name(name))


def configure_root_logger(level: Union[int, str] = logging.INFO,
                          log_file: Optional[str] = None) -> logging.Logger:
    """Configure the package root logger; child loggers propagate to it"""
    return setup_logger(ROOT_LOGGER_NAME, level=level, log_file=log_file)


def disable_console_logging():
    """Remove console handlers from the package root logger"""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)


def set_level(level: Union[int, str]):
    """Set the level of the package root logger"""
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)
