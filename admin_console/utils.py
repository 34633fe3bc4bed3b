import logging

from admin_console.core import config


LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logging.basicConfig(level=config.LOG_LEVEL.upper(), format=LOG_FORMAT)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger configured with the service log format."""
    return logging.getLogger(name)
