"""File-backed component loggers."""

import logging
import os


def build_file_logger(component: str, log_dir: str) -> logging.Logger:
    """
    Return a non-propagating logger writing to <log_dir>/<component>.log.
    Every caller asking for the same component and directory shares one
    logger and one file handler.
    """
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.abspath(os.path.join(log_dir, f"{component}.log"))
    logger = logging.getLogger(f"{component}:{log_path}")
    logger.setLevel(logging.INFO)

    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == log_path:
            return logger

    handler = logging.FileHandler(log_path, encoding="utf-8")
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
