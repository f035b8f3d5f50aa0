import logging
from typing import Final

from pythonjsonlogger.json import JsonFormatter

_HANDLER_NAME: Final[str] = "edge_auth_json"

_LEVELS: Final[dict[str, int]] = {
    "none": logging.CRITICAL + 10,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def setup_logger(level: str = "none") -> logging.Logger:
    """Attach a JSON handler to the ``edge_auth`` logger, once per process."""
    logger = logging.getLogger("edge_auth")
    if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        log_handler = logging.StreamHandler()
        log_handler.set_name(_HANDLER_NAME)
        formatter = JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s',
                                  rename_fields={'levelname': 'level', 'asctime': 'timestamp'})
        log_handler.setFormatter(formatter)
        logger.addHandler(log_handler)
    logger.setLevel(_LEVELS.get(level, _LEVELS["none"]))
    return logger
