"""Logging configuration."""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the ``gimerr`` logger tree once.

    Repeated calls only adjust the level, so ``create_app`` can run many times
    in one process (tests) without stacking handlers.
    """
    logger = logging.getLogger("gimerr")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if not any(getattr(h, "_gimerr", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._gimerr = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    # boto's own DEBUG output drowns request logs
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    return logger
