from __future__ import annotations

import logging
import os
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Optional

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Logged at the root level: request lines and server lifecycle.
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

# Database and cache drivers. A global commission change touches every
# customized user, so driver DEBUG output would bury our own lines.
_DRIVER_LOGGERS = ("pymongo", "motor", "redis")


def _level(env_name: str, default: str) -> str:
    raw = (os.getenv(env_name) or default).upper().strip()
    return raw if raw in _LEVELS else default


def _console_loggers(names: Iterable[str], level: str) -> Dict[str, Dict[str, Any]]:
    return {name: {"level": level, "handlers": ["console"], "propagate": False} for name in names}


def init_logging(
    *,
    root_level: str = "INFO",
    app_level: Optional[str] = None,
    driver_level: str = "WARNING",
    environment: Optional[str] = None,
) -> None:
    """
    Console logging for the API process.

    Env overrides: LOG_ROOT_LEVEL, LOG_APP_LEVEL, LOG_THIRD_PARTY_LEVEL.
    """
    root_lvl = _level("LOG_ROOT_LEVEL", root_level)
    app_lvl = _level("LOG_APP_LEVEL", app_level or root_lvl)
    driver_lvl = _level("LOG_THIRD_PARTY_LEVEL", driver_level)

    env_tag = f" [{environment}]" if environment else ""

    loggers: Dict[str, Dict[str, Any]] = {"feedesk": {"level": app_lvl, "handlers": ["console"], "propagate": False}}
    loggers.update(_console_loggers(_SERVER_LOGGERS, root_lvl))
    loggers.update(_console_loggers(_DRIVER_LOGGERS, driver_lvl))

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "[%(asctime)s] [%(levelname)s]" + env_tag + " %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "standard",
                }
            },
            "root": {"level": root_lvl, "handlers": ["console"]},
            "loggers": loggers,
        }
    )

    logging.getLogger(__name__).info("[logging] root=%s feedesk=%s drivers=%s", root_lvl, app_lvl, driver_lvl)
