from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from typing import Any

from core.config import AppConfig

# Handlers installed by setup_logger; they mark the root logger as configured
_installed: list[logging.Handler] = []


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logger(config: AppConfig) -> logging.Logger:
    """
    Configure the root logger once for the whole process.

    Every module logs through ``logging.getLogger(__name__)``, so handlers
    live on the root logger. Calling this again is a no-op while the
    handlers it installed are still attached.
    """
    logger = logging.getLogger()
    logger.setLevel(config.log_level.upper())

    if any(h in logger.handlers for h in _installed):
        return logger
    _installed.clear()

    text_formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    json_formatter = _JsonFormatter()

    console = logging.StreamHandler()
    if config.console_log_format.lower() == "json":
        console.setFormatter(json_formatter)
    else:
        console.setFormatter(text_formatter)
    _install(logger, console)

    if config.log_dir is not None:
        log_dir = config.log_dir
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            filename=str(log_dir / config.log_file),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(text_formatter)
        _install(logger, file_handler)

        if config.enable_json_file_log:
            json_file_handler = RotatingFileHandler(
                filename=str(log_dir / config.json_log_file),
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            json_file_handler.setFormatter(json_formatter)
            _install(logger, json_file_handler)

    return logger


def _install(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.addHandler(handler)
    _installed.append(handler)
