"""
Logging setup for the simulator service and CLI tools.

Three handlers on the given logger:
- Daily file with everything (DEBUG and up)
- Daily trades file (INFO and up, message only)
- Console (INFO and up)
"""

import logging
from datetime import datetime
from pathlib import Path

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'

# Loggers whose INFO lines are trade events
TRADE_LOGGERS = {"positions", "prediction_markets", "run_history"}


def setup_logging(log_dir: str = "logs", name: str = "") -> logging.Logger:
    """Setup file + console logging; `name=""` configures the root logger"""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    day = datetime.now().strftime('%Y%m%d')
    prefix = name or "rise"

    logger = logging.getLogger(name or None)
    logger.setLevel(logging.DEBUG)

    # Calling twice must not duplicate output
    for handler in list(logger.handlers):
        if getattr(handler, "_rise_handler", False):
            logger.removeHandler(handler)
            handler.close()

    file_handler = logging.FileHandler(f"{log_dir}/{prefix}_{day}.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    trade_handler = logging.FileHandler(f"{log_dir}/trades_{day}.log")
    trade_handler.setLevel(logging.INFO)
    trade_handler.setFormatter(logging.Formatter('%(asctime)s | %(message)s'))
    trade_handler.addFilter(lambda record: record.name in TRADE_LOGGERS)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    for handler in (file_handler, trade_handler, console_handler):
        handler._rise_handler = True
        logger.addHandler(handler)

    return logger
