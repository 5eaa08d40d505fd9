"""Logging helpers for the Mixpanel analytics client.

Every module logs through ``logging.getLogger(__name__)`` under the
``mixpanel_analytics`` namespace. The library adds no handlers of its own;
applications configure output as usual and may use ``configure_logging``
to apply the configured level to the package logger.
"""

import logging
from typing import Union

PACKAGE_LOGGER = "mixpanel_analytics"


def configure_logging(level: Union[int, str] = logging.WARNING) -> logging.Logger:
    """Set the level of the package logger and return it."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)
    return logger
