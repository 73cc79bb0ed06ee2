import logging
from logging.handlers import RotatingFileHandler

from autozoom.config_loader import CentralConfig

LOGGER_NAME = "autozoom"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(config: CentralConfig) -> logging.Logger:
    log_dir = config.logging.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, config.logging.level, logging.INFO)
    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(level)
    app_logger.propagate = False
    # Handler ersetzen, sonst doppelte Zeilen bei erneutem Aufruf
    for h in list(app_logger.handlers):
        app_logger.removeHandler(h)
        h.close()
    fmt = logging.Formatter(LOG_FORMAT)
    file_handler = RotatingFileHandler(
        log_dir / "autozoom.log",
        maxBytes=config.logging.rotation_mb * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(fmt)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(fmt)
    for handler in (file_handler, stream_handler):
        app_logger.addHandler(handler)
    logging.captureWarnings(True)
    return app_logger
