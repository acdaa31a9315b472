"""
Process-wide logging setup shared by the HTTP app and the CLI.

Handlers and the quiet third-party loggers (SQLAlchemy, httpx) come from the
packaged `logging.yaml`. `app.log_level` (`CARPARK_LOG_LEVEL`) is applied to the
root logger, its handlers and the `app.name` logger that every `carpark.*`
module logger hangs off.
"""

from __future__ import annotations

import copy
import logging.config

from carpark.config.settings import get_logging_config, get_settings


def configure_logging() -> None:
    settings = get_settings()
    # get_logging_config() is cached; never mutate it.
    config = copy.deepcopy(get_logging_config())

    level = settings.app.log_level.upper()
    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level
    config.setdefault("loggers", {})[settings.app.name] = {"level": level, "propagate": True}

    logging.config.dictConfig(config)
