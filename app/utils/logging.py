import json
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict

from loguru import logger

from app.utils.context import get_request_id

DEFAULT_LOGGING_CONFIG = {
    "logger": {
        "log_dir": "logs",
        "filename": "birthday-greeter.log",
        "level": "info",
        "rotation": "20 MB",
        "retention": "14 days",
        "console_format": "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | {extra[request_id]} | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        "file_format": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[request_id]} | {name}:{function}:{line} - {message}",
        "use_json_logs": False,
    }
}

# Standard library loggers routed through loguru
INTERCEPTED_LOGGERS = [
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "celery",
    "httpx",
]


class InterceptHandler(logging.Handler):
    """Forward standard logging records (uvicorn, celery, httpx) to loguru"""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _patch_request_id(record):
    # Loggers bound at import time pick up the active request or cycle id
    request_id = get_request_id()
    if request_id:
        record["extra"]["request_id"] = request_id


class CustomizeLogger:
    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        config = cls.load_logging_config(config_path)
        logging_config = config.get(environment, config["logger"])
        return cls.customize_logging(logging_config)

    @classmethod
    def customize_logging(cls, logging_config: Dict[str, Any]):
        level = os.getenv("LOG_LEVEL", logging_config.get("level", "info")).upper()
        filename = f"{date.today().strftime('%Y-%m-%d')}-{logging_config['filename']}"

        logger.remove()
        # Records logged outside a request or cycle still render {extra[request_id]}
        logger.configure(extra={"request_id": "app"}, patcher=_patch_request_id)

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level,
            format=logging_config["console_format"],
            colorize=True,
        )

        file_sink: Dict[str, Any] = {
            "rotation": logging_config.get("rotation"),
            "retention": logging_config.get("retention"),
            "enqueue": True,
            "backtrace": True,
            "level": level,
            "colorize": False,
        }
        if logging_config.get("use_json_logs"):
            file_sink["serialize"] = True
        else:
            file_sink["format"] = logging_config["file_format"]
        logger.add(str(Path(logging_config["log_dir"]) / filename), **file_sink)

        cls._setup_intercept_handlers()
        return logger

    @staticmethod
    def _setup_intercept_handlers():
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        for log_name in INTERCEPTED_LOGGERS:
            logging.getLogger(log_name).handlers = [InterceptHandler()]

    @staticmethod
    def load_logging_config(config_path: Path) -> Dict[str, Any]:
        if not config_path.exists():
            return DEFAULT_LOGGING_CONFIG
        with open(config_path) as config_file:
            return json.load(config_file)


# Initialize logger
config_path = Path(os.getenv("LOGGING_CONFIG_PATH", "logging_config.json"))
environment = (
    "production"
    if os.getenv("ENVIRONMENT", "development") == "production"
    else "logger"
)
custom_logger = CustomizeLogger.make_logger(config_path, environment)


def get_logger():
    """Get the custom logger instance with request ID binding."""
    request_id = get_request_id() or "app"
    return custom_logger.bind(request_id=request_id)
