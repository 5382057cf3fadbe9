"""应用入口：组装 KnoHub 的 FastAPI 实例。

启动顺序：初始化日志 → 注册中间件与异常处理 → 挂载 ``API_PREFIX`` 下的路由；
应用启动事件中建表。
"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.middleware.request_logging import RequestLoggingMiddleware
from app.packages import get_active_package

package = get_active_package()
package.setup_logging()
settings = package.get_settings()
logger = package.logger


def create_app() -> FastAPI:
    application = FastAPI(title=settings.project_name, debug=settings.debug)

    # 前端单独部署，跨域全放开；下载文件名与请求 ID 需要暴露给浏览器脚本
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id", "Content-Disposition"],
    )
    application.add_middleware(RequestLoggingMiddleware)

    application.add_exception_handler(StarletteHTTPException, package.http_exception_handler)
    application.add_exception_handler(RequestValidationError, package.validation_exception_handler)
    application.add_exception_handler(Exception, package.generic_exception_handler)

    @application.on_event("startup")
    async def startup_event() -> None:
        package.init_db()
        logger.info("%s started on port %s (storage=%s)", settings.project_name, settings.app_port, settings.storage_type)

    @application.get("/health")
    async def health_check() -> dict:
        return package.create_response("OK", {"status": "healthy"})

    application.include_router(package.api_router, prefix=settings.api_prefix)
    return application


app = create_app()
