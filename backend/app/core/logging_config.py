"""
Logging setup: console always, rotating file when LOG_FILE is set.

Services log ``event key=value`` lines (``checkout_session_created user=...``)
so they can be grepped in container logs.
"""
import logging
import logging.config
from pathlib import Path

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpcore", "httpx", "urllib3", "asyncio", "stripe", "sqlalchemy.engine")


def build_logging_config(level: str, log_file: str = "") -> dict:
    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "default",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 3,
            "encoding": "utf-8",
            "formatter": "default",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT}},
        "handlers": handlers,
        "root": {"level": level, "handlers": list(handlers)},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    }


def setup_logging() -> None:
    """Apply the logging config once per process."""
    root = logging.getLogger()
    if getattr(root, "_assinesaude_configured", False):
        return

    level = settings.LOG_LEVEL.upper()
    log_file = settings.LOG_FILE
    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log_file = ""
            logging.getLogger(__name__).warning("File logging disabled for %s (%s)", settings.LOG_FILE, exc)

    logging.config.dictConfig(build_logging_config(level, log_file))
    root._assinesaude_configured = True
