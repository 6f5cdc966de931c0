"""
Custom logging configuration for ecoplane.

Extends Python's standard logging with a DEEP_DEBUG level (5) for
per-trade and per-tick tracing. Every ecoplane module obtains its logger
through :func:`getLogger`, so component loggers are named
``ecoplane.<module>`` and can be tuned individually.

Log Levels
----------
- CRITICAL (50): Critical errors
- ERROR (40): Errors, isolated task failures
- WARNING (30): Rejected or degraded conditions (default for noisy paths)
- INFO (20): Lifecycle and state flips (default)
- DEBUG (10): Per-tick detail
- DEEP_DEBUG (5): Per-trade detail

Examples
--------
>>> from ecoplane import logging
>>> log = logging.getLogger("ecoplane.market")
>>> log.info("Market ready")
>>> log.deep("Very verbose output")

Configure per-component levels:

>>> logging.configure({"default_level": "INFO", "components": {"market": "DEBUG"}})

See Also
--------
ecoplane.config.ConfigValidator : Validates the ``logging`` section
"""

import logging
from collections.abc import Mapping
from typing import Any

(CRITICAL, ERROR, WARNING, INFO, DEBUG) = (
    logging.CRITICAL,
    logging.ERROR,
    logging.WARNING,
    logging.INFO,
    logging.DEBUG,
)
DEEP_DEBUG = 5
logging.addLevelName(DEEP_DEBUG, "DEEP")

ROOT_LOGGER = "ecoplane"


class EcoLogger(logging.Logger):
    """
    Logger with DEEP_DEBUG level support.

    Examples
    --------
    >>> logger = EcoLogger("test")
    >>> logger.setLevel(DEEP_DEBUG)
    >>> logger.deep("per-trade detail")
    """

    def deep(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log *msg* at DEEP_DEBUG level (5)."""
        if self.isEnabledFor(DEEP_DEBUG):
            self._log(DEEP_DEBUG, msg, args, **kwargs)


# every logger created after import is an EcoLogger
logging.setLoggerClass(EcoLogger)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)


def getLogger(name: str | None = None) -> EcoLogger:
    """
    Get an EcoLogger instance.

    Parameters
    ----------
    name : str, optional
        Dotted logger name; None gives the root logger.

    Returns
    -------
    EcoLogger
        Logger exposing ``deep``.
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def level_from_name(name: str) -> int:
    """Translate a level name (``"DEEP_DEBUG"``, ``"info"``...) to its number."""
    upper = name.upper()
    if upper in ("DEEP_DEBUG", "DEEP"):
        return DEEP_DEBUG
    level = logging.getLevelName(upper)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level {name!r}")
    return level


def configure(log_config: Mapping[str, Any]) -> None:
    """
    Apply a ``logging`` configuration section.

    Parameters
    ----------
    log_config : Mapping
        Keys:
        - default_level: str, level of the ``ecoplane`` logger
        - components: dict[str, str], per-component overrides, where the key
          is the module name below ``ecoplane`` (e.g. ``"market"``)
    """
    default_level = log_config.get("default_level", "INFO")
    logging.getLogger(ROOT_LOGGER).setLevel(level_from_name(default_level))

    for component, level in (log_config.get("components") or {}).items():
        logging.getLogger(f"{ROOT_LOGGER}.{component}").setLevel(
            level_from_name(level)
        )
