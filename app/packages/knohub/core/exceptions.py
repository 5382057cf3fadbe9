"""异常处理模块：定义统一的业务异常与响应格式。

业务异常均继承 ``AppException``（即 FastAPI 的 ``HTTPException``），
由全局处理器统一转换为 ``{"success", "message", "data"}`` 响应结构：
领域错误映射为 4xx，存储 IO 失败与未预料异常映射为 5xx。
"""

from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.packages.knohub.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_PAYLOAD_TOO_LARGE,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)
from app.packages.knohub.core.logger import logger
from app.packages.knohub.core.responses import create_response


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data=None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data

    @property
    def message(self) -> str:
        return str(self.detail)

    def __str__(self) -> str:
        return self.message


class NotFoundError(AppException):
    """目标文件、文件夹或资源不存在（或已软删除）。"""

    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, HTTP_STATUS_NOT_FOUND, data)


class WrongKindError(AppException):
    """操作要求文件却拿到文件夹，或反之。"""

    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST, data)


class InvalidTargetError(AppException):
    """目标父级不存在、不是文件夹，或与操作不兼容（如形成环）。"""

    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST, data)


class NameConflictError(AppException):
    """同一层级下已存在未删除的同名项。"""

    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, HTTP_STATUS_CONFLICT, data)


class EmptyNameError(AppException):
    def __init__(self, msg: str = "名称不能为空", data=None) -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST, data)


class StorageIOError(AppException):
    """物理存储读写失败。"""

    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, HTTP_STATUS_INTERNAL_SERVER_ERROR, data)


class DocumentRenderError(AppException):
    """文档转换失败（如 .doc 转 HTML）。"""

    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST, data)


class PayloadTooLargeError(AppException):
    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, HTTP_STATUS_PAYLOAD_TOO_LARGE, data)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = create_response(str(exc.detail), getattr(exc, "data", None), success=False)
    return JSONResponse(status_code=exc.status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    payload = create_response("服务器内部错误", None, success=False)
    return JSONResponse(status_code=HTTP_STATUS_INTERNAL_SERVER_ERROR, content=payload)


def _jsonable(obj: Any) -> Any:
    # pydantic 的错误明细里可能带有异常对象或原始字节
    if isinstance(obj, Exception):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, dict):
        return {key: _jsonable(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(item) for item in obj]
    return obj


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # pragma: no cover - framework glue
    """请求参数校验失败：422，``data`` 中携带字段级错误明细。"""
    payload = create_response("请求参数验证失败", _jsonable(exc.errors()), success=False)
    return JSONResponse(status_code=HTTP_STATUS_UNPROCESSABLE_ENTITY, content=payload)
