import logging
import sys

from pythonjsonlogger import jsonlogger

from aurelia.config import settings

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'
SERVICE_NAME = "aurelia-knowledge-graph"


def _json_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields={"levelname": "level", "asctime": "timestamp"},
        static_fields={"service": SERVICE_NAME},
    ))
    return handler


def get_logger(name: str) -> logging.Logger:
    """
    Returns a logger that writes one JSON object per line to stdout.
    Calling it again for the same name reuses the configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.addHandler(_json_handler())
    logger.propagate = False
    return logger
