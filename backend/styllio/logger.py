import logging
import os
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger

def setup_logger(name: str = "styllio_backend", level: Optional[str] = None) -> logging.Logger:
    """
    Configure structured JSON logging for the application.

    Level comes from `level`, then the LOG_LEVEL environment variable, then INFO.
    Job and session identifiers are passed through `extra=` and end up as
    top-level JSON fields.
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or os.getenv("LOG_LEVEL") or "INFO").upper())

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)

    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger

logger = setup_logger()

client_logger = logger.getChild("client")
