import logging

from ..constants import LOG_FORMAT, LOG_LEVEL


def get_logger(name="steel_billing", level=LOG_LEVEL):
    """Console logger for `name`; configured once, later calls return it unchanged."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(level)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)
    return logger
