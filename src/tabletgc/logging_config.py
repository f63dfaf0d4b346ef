"""
Logging configuration for tabletgc.

Every module logs through ``get_logger(__name__)`` so that one handler on the
``tabletgc`` logger covers the collector, the environments and the backends.
What ends up in the log of a collection pass:

    INFO     pass summaries, deleted batch sizes, table directories removed,
             every would-be deletion in safe mode
    WARNING  failed deletes left for the next pass, retries, foreign objects
             found in a marker log
    ERROR    the cause of a failed pass, exhausted S3 retries
    DEBUG    the decision for every single candidate, reference index sizes,
             active bulk loads, individual file writes

The starting level comes from ``TABLETGC_LOG_LEVEL`` (default ``INFO``).
"""

import logging
import os
import sys

LOG_LEVEL_ENV = "TABLETGC_LOG_LEVEL"


class TabletGCLogger:
    """Configures the ``tabletgc`` logger once per process."""

    _initialized = False

    @classmethod
    def get_logger(cls, name: str = "tabletgc") -> logging.Logger:
        """Get a logger under ``tabletgc``, configuring the package on first use.

        Args:
            name: Logger name, usually the calling module's ``__name__``

        Returns:
            Configured logger instance
        """
        if not cls._initialized:
            cls._setup_logging()

        return logging.getLogger(name)

    @classmethod
    def _setup_logging(cls) -> None:
        if cls._initialized:
            return

        logger = logging.getLogger("tabletgc")
        level = cls.level_from_env()
        logger.setLevel(level)

        # Prevent duplicate handlers
        if logger.handlers:
            cls._initialized = True
            return

        # Passes print their statistics on stdout, keep the log on stderr
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)

        # Format: timestamp - level - module - message
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        console_handler.setFormatter(formatter)

        logger.addHandler(console_handler)

        cls._initialized = True

    @staticmethod
    def level_from_env() -> int:
        """Level named by ``TABLETGC_LOG_LEVEL``; unknown names fall back to INFO."""
        name = os.getenv(LOG_LEVEL_ENV, "INFO").strip().upper()
        level = logging.getLevelName(name)
        return level if isinstance(level, int) else logging.INFO

    @classmethod
    def set_level(cls, level: int) -> None:
        """Set the level of the package logger and its handlers.

        Args:
            level: Logging level (logging.DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        logger = cls.get_logger()
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)


def get_logger(name: str = "tabletgc") -> logging.Logger:
    """Get a tabletgc logger.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    return TabletGCLogger.get_logger(name)
