import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional, Tuple

from .config import LoggingSettings, Settings, get_settings

# Record attributes copied into JSON output when a message carries them
STAGING_FIELDS = ("table", "column", "sk", "id", "action")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with staging context when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }

        for name in STAGING_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)

        # Warnings about single values pass their context as extra_fields
        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            entry.update(extra_fields)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


def _build_formatter(config: LoggingSettings) -> logging.Formatter:
    if config.json_format:
        return JSONFormatter()
    return logging.Formatter(fmt=config.format, datefmt="%Y-%m-%d %H:%M:%S")


def _file_handler(config: LoggingSettings) -> logging.Handler:
    path = Path(config.file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure the root logger for a staging run.

    Messages go to stderr, and to a rotating file when LOG_FILE_PATH is set.
    Standard output stays free for command results.
    """
    settings = settings or get_settings()
    config = settings.logging

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = [logging.StreamHandler(sys.stderr)]
    if config.file_path:
        handlers.append(_file_handler(config))

    formatter = _build_formatter(config)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )


class LoggerAdapter(logging.LoggerAdapter):
    """Binds staging context (usually the table name) to every message."""

    def __init__(self, logger: logging.Logger, extra: Dict[str, Any]):
        super().__init__(logger, extra)

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> Tuple[str, MutableMapping[str, Any]]:
        extra = kwargs.setdefault("extra", {})
        for key, value in self.extra.items():
            extra.setdefault(key, value)
        return msg, kwargs
