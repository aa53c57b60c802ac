# utils/logger.py
import logging
import os
import sys
from config.paths import LOG_PATH

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# set LOG_TO_FILE=false to log to stdout only (e.g. read-only containers)
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() != "false"

# the engine logs through module loggers under these packages
ENGINE_LOGGERS = ("scheduler", "core")


def _build_handlers() -> list:
    handlers = []
    if LOG_TO_FILE:
        LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(LOG_PATH, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handlers.append(file_handler)

    # stdout -> docker logs
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    handlers.append(stream_handler)
    return handlers


logger = logging.getLogger("schedule")

# Prevent duplicate handlers if imported multiple times
if not logger.handlers:
    _handlers = _build_handlers()
    for _name in ("schedule",) + ENGINE_LOGGERS:
        _target = logging.getLogger(_name)
        _target.setLevel(LOG_LEVEL)
        for _handler in _handlers:
            _target.addHandler(_handler)
