"""
Logging configuration for applications using pyelliptic.

The library itself only creates loggers under the 'pyelliptic' namespace;
this attaches handlers so that solver progress shows up on standard output.
"""
import logging
import sys


def setup_logging(level=logging.INFO, log_file=None):
    """
    Configures the logger of the 'pyelliptic' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
    """
    logger = logging.getLogger("pyelliptic")
    logger.setLevel(level)

    # replace handlers of an earlier call
    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.info("Logging initialized.")
    return logger
