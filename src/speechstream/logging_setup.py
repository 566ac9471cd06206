"""Console logging setup for the CLI and server."""

import logging
import sys


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stderr handler to the ``speechstream`` logger."""
    logger = logging.getLogger("speechstream")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    return logger
