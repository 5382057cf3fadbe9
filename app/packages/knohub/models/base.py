"""ORM 基础设施：声明式基类、审计时间字段与软删除字段。

资源与文件树节点都只做软删除，查询时由 ``CRUDBase.query`` 统一过滤 ``is_deleted``。
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression

NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    """``create_time`` 由数据库写入；``update_time`` 随每次 UPDATE 刷新。"""

    create_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    update_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SoftDeleteMixin:
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=expression.false(), index=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def mark_deleted(self, at: datetime) -> None:
        """标记为已删除；已删除的记录保留原删除时间。"""
        if self.is_deleted:
            return
        self.is_deleted = True
        self.deleted_at = at
