import logging
import sys
from pythonjsonlogger.json import JsonFormatter

def setup_logger(name: str = "bestofgoa") -> logging.Logger:
    """
    Configure structured JSON logging for the admin backend and client library.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)

    formatter = JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger

logger = setup_logger()
