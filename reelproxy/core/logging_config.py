from __future__ import annotations

from typing import Any, Dict
import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
TIME_FORMAT = "%H:%M:%S"


def normalize_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level or "").strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: int | str = logging.INFO) -> None:
    """Plain stdout logging for scripts and tests that do not run under uvicorn."""
    logging.basicConfig(level=normalize_level(level), format=LOG_FORMAT, datefmt=TIME_FORMAT)


def get_uvicorn_log_config(level: int | str = logging.INFO) -> Dict[str, Any]:
    """Return a logging dictConfig for uvicorn and reelproxy loggers with time included."""
    level = normalize_level(level)
    default_fmt = "%(asctime)s %(levelprefix)s [%(name)s] %(message)s"
    access_fmt = "%(asctime)s %(levelprefix)s %(client_addr)s - \"%(request_line)s\" %(status_code)s"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": default_fmt,
                "datefmt": TIME_FORMAT,
                "use_colors": True,
            },
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": access_fmt,
                "datefmt": TIME_FORMAT,
                "use_colors": True,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["access"], "level": level, "propagate": False},
            # uvicorn.error propagates to "uvicorn"; reelproxy.* to the root handler.
            "reelproxy": {"level": level},
        },
        "root": {"handlers": ["default"], "level": level},
    }
