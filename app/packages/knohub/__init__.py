"""KnoHub 业务包：资源卡片与其文件树（上传、文件夹、重命名、拖拽排序、预览）。"""

from app.packages.types import AppPackage

from .api.v1 import api_router
from .core.config import get_settings
from .core.exceptions import generic_exception_handler, http_exception_handler, validation_exception_handler
from .core.logger import logger, setup_logging
from .core.responses import create_response
from .db.init_db import init_db

package = AppPackage(
    name="knohub",
    api_router=api_router,
    get_settings=get_settings,
    setup_logging=setup_logging,
    logger=logger,
    init_db=init_db,
    create_response=create_response,
    http_exception_handler=http_exception_handler,
    validation_exception_handler=validation_exception_handler,
    generic_exception_handler=generic_exception_handler,
)

__all__ = ["package"]
