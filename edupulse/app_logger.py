import logging

from .config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
ROOT_LOGGER_NAME = "edupulse"


def setup_logging(level: str | None = None) -> logging.Logger:
    resolved = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=[logging.StreamHandler()])

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(resolved)
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = logging.getLogger(ROOT_LOGGER_NAME)
    return base.getChild(name) if name else base
