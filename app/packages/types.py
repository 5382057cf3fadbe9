"""业务包契约：主应用通过 ``AppPackage`` 获取路由、配置、日志与异常处理。"""

from __future__ import annotations

from dataclasses import dataclass
from logging import Logger
from typing import Any, Awaitable, Callable

from fastapi import APIRouter

ExceptionHandler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class AppPackage:
    name: str
    api_router: APIRouter
    get_settings: Callable[[], Any]
    setup_logging: Callable[[], None]
    logger: Logger
    init_db: Callable[[], None]
    create_response: Callable[..., dict]
    http_exception_handler: ExceptionHandler
    validation_exception_handler: ExceptionHandler
    generic_exception_handler: ExceptionHandler
