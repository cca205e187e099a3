import logging
import os
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from typing import List

from app.platform.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "agent_scanner.log"


@lru_cache
def _shared_handlers() -> List[logging.Handler]:
    """
    Console + rotating file handlers, created once and shared by every logger
    so only one handler ever rotates the log file.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers: List[logging.Handler] = [console_handler]

    if settings.LOG_TO_FILE:
        log_dir = os.path.join(os.getcwd(), settings.LOG_DIR)
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE_NAME), maxBytes=10_000_000, backupCount=5
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    return handlers


def get_logger(name: str) -> logging.Logger:
    """
    Logger writing to console and, unless LOG_TO_FILE is off, to logs/agent_scanner.log.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    level = logging.DEBUG if settings.DEBUG else logging.getLevelName(settings.LOG_LEVEL.upper())
    logger.setLevel(level)
    for handler in _shared_handlers():
        logger.addHandler(handler)
    # app.main also configures the root logger
    logger.propagate = False

    return logger
