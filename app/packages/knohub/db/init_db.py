"""数据库初始化：启动时建表。"""

from __future__ import annotations

import logging

from app.packages.knohub.db import session as db_session
from app.packages.knohub.models import FileItem, Resource  # noqa: F401 - ensure table creation
from app.packages.knohub.models.base import Base

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables if they do not exist."""
    Base.metadata.create_all(bind=db_session.engine)
    # 不再写入示例资源，数据全部来自用户操作
    logger.info("Sample data initialization is disabled")
