"""
Logging configuration for the remotecmd server and agent.
"""
import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(name="remotecmd", level=logging.INFO):
    """
    Configure and return a logger with a console handler.
    """
    logger = logging.getLogger(name)

    # Only set up handlers if they haven't been set up already
    if not logger.handlers:
        logger.setLevel(level)
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    return logger


def get_logger(module):
    """Child logger of the root `remotecmd` logger, e.g. `remotecmd.storage`."""
    return logging.getLogger(f"remotecmd.{module}")


logger = setup_logger()
