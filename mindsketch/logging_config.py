import logging
from logging.config import dictConfig
from pathlib import Path
from typing import Optional, Union


def setup_logging(level: Union[int, str] = logging.INFO,
                  log_file: Optional[Path] = None):
    """Configure console (and optional rotating file) logging."""
    if isinstance(level, int):
        level = logging.getLevelName(level)

    handlers = {
        "console": {
            "level": level,
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    }
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "level": level,
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "standard",
            "filename": str(log_file),
            "maxBytes": 5_000_000,  # 5 MB
            "backupCount": 3,
            "encoding": "utf-8",
        }

    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
            }
        },
        "handlers": handlers,
        "loggers": {
            "mindsketch": {
                "handlers": list(handlers),
                "level": level,
                "propagate": False,
            },
        },
    })
