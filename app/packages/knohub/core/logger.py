"""日志配置：控制台彩色输出、按天滚动的文件日志，以及请求上下文注入。

每条日志都会带上当前请求的 ``request_id`` 与客户端 IP（由请求日志中间件写入），
非请求上下文中输出 ``-``。``LOG_JSON=true`` 时切换为单行 JSON，方便日志平台采集。
"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Optional

from .config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s %(client_ip)s] %(message)s"
_MODULE = "app.packages.knohub.core.logger"

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("knohub_request_id", default=None)
_client_ip_ctx: ContextVar[Optional[str]] = ContextVar("knohub_client_ip", default=None)


class LocalTimeFormatter(logging.Formatter):
    """按配置时区渲染时间，未指定 datefmt 时输出带毫秒的 ISO 格式。"""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        stamp = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        if datefmt:
            return stamp.strftime(datefmt)
        return stamp.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(LocalTimeFormatter):
    """按级别着色，仅在输出到终端时启用。"""

    RESET = "\033[0m"
    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: Optional[str] = None, use_colors: Optional[bool] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{text}{self.RESET}" if color else text


class JsonFormatter(LocalTimeFormatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", None),
            "client_ip": getattr(record, "client_ip", None),
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class RequestContextFilter(logging.Filter):
    """把 contextvars 中的请求标识与客户端 IP 写入每条 LogRecord。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get() or "-"
        record.client_ip = _client_ip_ctx.get() or "-"
        return True


def _build_config(settings) -> Dict[str, Any]:
    level = settings.log_level
    console_formatter = "json" if settings.log_json else "console"
    file_formatter = "json" if settings.log_json else "plain"
    handlers = ["console", "file"]

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"()": f"{_MODULE}.ColorFormatter", "fmt": LOG_FORMAT},
            "plain": {"()": f"{_MODULE}.LocalTimeFormatter", "fmt": LOG_FORMAT},
            "json": {"()": f"{_MODULE}.JsonFormatter"},
        },
        "filters": {"request_context": {"()": f"{_MODULE}.RequestContextFilter"}},
        "handlers": {
            "console": {
                "level": level,
                "class": "logging.StreamHandler",
                "formatter": console_formatter,
                "filters": ["request_context"],
            },
            "file": {
                "level": level,
                "class": "logging.handlers.TimedRotatingFileHandler",
                "formatter": file_formatter,
                "filename": str(settings.log_file_path),
                "when": "midnight",
                "backupCount": 14,
                "encoding": "utf-8",
                "delay": True,
                "filters": ["request_context"],
            },
        },
        # 访问日志由请求日志中间件统一输出，uvicorn 自身的 access 日志降为 WARNING
        "loggers": {
            "app": {"handlers": handlers, "level": level, "propagate": False},
            "uvicorn": {"handlers": handlers, "level": level, "propagate": False},
            "uvicorn.error": {"handlers": handlers, "level": level, "propagate": False},
            "uvicorn.access": {"handlers": handlers, "level": "WARNING", "propagate": False},
        },
        "root": {"handlers": handlers, "level": level},
    }


def setup_logging() -> None:
    """按当前配置初始化日志，可重复调用。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(_build_config(settings))


logger = logging.getLogger("app")


def set_request_context(request_id: Optional[str], client_ip: Optional[str] = None) -> None:
    _request_id_ctx.set(request_id)
    _client_ip_ctx.set(client_ip)