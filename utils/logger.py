"""Centralized logging with rotation; the ledger and lifecycle logs double as an audit trail."""
import logging
import os
from logging.handlers import RotatingFileHandler

# Module loggers (logging.getLogger(__name__)) under these packages share the app handlers.
ENGINE_LOGGER_NAMES = ("utils", "routes")


def init_logging(app) -> logging.Logger:
    log_dir = app.config.get("LOG_DIR") or os.path.join(app.instance_path, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "grievance.log")

    level_name = (app.config.get("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(module)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)

    logger = logging.getLogger(app.name)
    for name in (app.name, *ENGINE_LOGGER_NAMES):
        target = logging.getLogger(name)
        # create_app may run more than once per process (tests); drop stale handlers.
        for handler in list(target.handlers):
            target.removeHandler(handler)
            handler.close()
        target.setLevel(level)
        target.addHandler(file_handler)
        target.addHandler(stream_handler)
        target.propagate = False

    app.logger.handlers = logger.handlers
    app.logger.setLevel(level)

    logger.info("Logging initialized", extra={"path": log_path})
    return logger
