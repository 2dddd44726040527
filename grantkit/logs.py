from __future__ import annotations

import logging
import sys

_FORMAT = "%(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "WARNING", *, quiet: bool = False) -> None:
    """Route ``grantkit.*`` records to stderr. Only the CLI calls this."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level: {level!r}")
        level = resolved
    if quiet:
        level = max(level, logging.ERROR)

    logger = logging.getLogger("grantkit")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if getattr(handler, "_grantkit", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._grantkit = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
