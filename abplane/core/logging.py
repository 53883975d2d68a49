import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a single stream handler to the ``abplane`` logger.

    Safe to call more than once; the handler is only installed the first time.
    """
    logger = logging.getLogger("abplane")
    logger.setLevel(level.upper())

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
