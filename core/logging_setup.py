"""
core/logging_setup.py -- Process-wide logging setup.

Stdlib logging only. Every module takes a named logger under the "mizon"
namespace (mizon.api, mizon.auth, ...) so operators can raise or lower
verbosity per layer with standard logging config.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler and level.

    Unknown level names fall back to INFO rather than failing startup --
    a typo in LOG_LEVEL should not take the auth service down.
    """
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(level=resolved, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger("mizon").setLevel(resolved)
