"""
BudgetDesk — Logging
One format for the whole app. Modules call logging.getLogger(__name__);
setup_logging() wires handlers on the package root logger once.
"""
import logging

from budgetdesk.config import LOG_LEVEL, LOG_FILE

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = LOG_LEVEL, log_file: str = LOG_FILE) -> logging.Logger:
    logger = logging.getLogger("budgetdesk")
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
