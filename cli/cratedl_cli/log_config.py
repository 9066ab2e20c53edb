"""Logging setup for the crate-dl command line.

Log records go to stderr so stdout stays reserved for results. The level is
chosen in this order: ``--verbose``, the ``CRATE_DL_LOG`` environment
variable, the configured ``log_level``.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

from cratedl.models import LogLevel

LOG_ENV_VAR = "CRATE_DL_LOG"

LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(log_level: str) -> None:
    """Configure structlog and standard logging with the specified level.

    Args:
        log_level: Log level string (debug, info, warning, error).
    """
    level = LEVEL_MAP.get(log_level.lower(), logging.WARNING)

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        level=level,
        stream=sys.stderr,
        force=True,  # Override any existing configuration
    )

    # Configure structlog to filter by level
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # stderr may be swapped between invocations (tests, embedding)
        cache_logger_on_first_use=False,
    )


def resolve_log_level(verbose: bool, configured: LogLevel | str) -> tuple[str, str | None]:
    """Pick the effective log level.

    Args:
        verbose: Whether ``--verbose`` was given.
        configured: Level from the configuration file.

    Returns:
        Tuple of (level, rejected_env_value). The second item is the
        unusable ``CRATE_DL_LOG`` value, if one was set.
    """
    env_value = os.environ.get(LOG_ENV_VAR, "").strip().lower()
    rejected = env_value if env_value and env_value not in LEVEL_MAP else None

    if verbose:
        return "debug", rejected
    if env_value in LEVEL_MAP:
        return env_value, None
    return LogLevel(configured).value, rejected


def setup_logging(verbose: bool, configured: LogLevel | str) -> str:
    """Resolve the level, configure logging and report a bad env value.

    Returns:
        The effective log level.
    """
    level, rejected = resolve_log_level(verbose, configured)
    configure_logging(level)
    if rejected is not None:
        structlog.get_logger(__name__).warning(
            "invalid_log_level_ignored",
            variable=LOG_ENV_VAR,
            value=rejected,
            allowed=sorted(LEVEL_MAP),
        )
    return level
