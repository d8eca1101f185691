import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict

from loguru import logger

from noticeboard.config.settings import settings
from noticeboard.utils.context import get_request_id

DEFAULT_REQUEST_ID = "app"

# Used when logging_config.json is absent, e.g. in a worker started from another directory
FALLBACK_LOGGING_CONFIG: Dict[str, Dict[str, Any]] = {
    "logger": {
        "log_dir": "logs",
        "filename": "noticeboard.log",
        "level": "info",
        "rotation": "20 MB",
        "retention": "14 days",
        "console_format": "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | {extra[request_id]} | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        "file_format": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[request_id]} | {name}:{function}:{line} - {message}",
        "use_json_logs": False,
    }
}

# Standard-library loggers of the worker stack routed into loguru
INTERCEPTED_LOGGERS = ("celery", "celery.task", "celery.beat", "sqlalchemy.engine", "aiosqlite")


def _inject_request_id(record) -> None:
    # A job context set at log time wins over an id bound at import time
    request_id = get_request_id()
    if request_id:
        record["extra"]["request_id"] = request_id
    else:
        record["extra"].setdefault("request_id", DEFAULT_REQUEST_ID)


class InterceptHandler(logging.Handler):
    """Forwards standard-library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class CustomizeLogger:
    @classmethod
    def make_logger(cls, config_path: Path, section: str = "logger"):
        config = cls.load_logging_config(config_path)
        logging_config = config.get(section) or config["logger"]
        level = (settings.LOG_LEVEL or logging_config.get("level", "info")).upper()

        logger.remove()
        logger.configure(extra={"request_id": DEFAULT_REQUEST_ID}, patcher=_inject_request_id)

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level,
            format=logging_config["console_format"],
            colorize=True,
        )
        cls._add_file_sink(logging_config, level)
        cls.intercept_standard_logging()

        return logger

    @staticmethod
    def _add_file_sink(logging_config: Dict[str, Any], level: str) -> None:
        log_file = Path(logging_config["log_dir"]) / (
            f"{date.today().strftime('%Y-%m-%d')}-{logging_config['filename']}"
        )
        sink_options = dict(
            rotation=logging_config.get("rotation"),
            retention=logging_config.get("retention"),
            enqueue=True,
            backtrace=True,
            level=level,
            colorize=False,
        )
        if logging_config.get("use_json_logs") and logging_config.get("file_format") == "json":
            logger.add(str(log_file), serialize=True, **sink_options)
        else:
            logger.add(str(log_file), format=logging_config["file_format"], **sink_options)

    @staticmethod
    def intercept_standard_logging() -> None:
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        for name in INTERCEPTED_LOGGERS:
            std_logger = logging.getLogger(name)
            std_logger.handlers = [InterceptHandler()]
            std_logger.propagate = False
        # SQL echo stays governed by DATABASE_ECHO
        if not settings.DATABASE_ECHO:
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    @staticmethod
    def load_logging_config(config_path: Path) -> Dict[str, Dict[str, Any]]:
        if not config_path.is_file():
            return FALLBACK_LOGGING_CONFIG
        with open(config_path) as config_file:
            return json.load(config_file)


custom_logger = CustomizeLogger.make_logger(
    Path(settings.LOGGING_CONFIG_PATH),
    "production" if settings.ENVIRONMENT == "production" else "logger",
)


def get_logger():
    """Logger carrying the current request id (or "app" outside any job)."""
    return custom_logger.bind(request_id=get_request_id() or DEFAULT_REQUEST_ID)
