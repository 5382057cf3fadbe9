"""文件树节点模型（文件与文件夹合并为一张表）。

存储规则：
- parent_id 为空表示位于资源根层级；父子关系仅通过外键表达，不建立 ORM 集合；
- original_name：同层级重名判断与删除序号计算所用的名称，重命名时同步更新；
- name：展示名，未删除时与 original_name 相同，软删除后改写为 ``<original_name>_deleted_<n>``；
- 文件夹的 type/size/size_bytes/url/storage_path 恒为空；
- display_order：同层级未删除兄弟节点之间的 0 基连续排序。
"""

from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.knohub.models.base import Base, SoftDeleteMixin, TimestampMixin


class FileItem(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "file_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    original_name: Mapped[str] = mapped_column(String(255), index=True)
    is_folder: Mapped[bool] = mapped_column(Boolean, default=False)

    # 仅文件有意义
    type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    parent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("file_items.id"), nullable=True, index=True
    )
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), index=True)

    delete_sequence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def scope(self) -> tuple[int, Optional[int]]:
        """同层级作用域：``(resource_id, parent_id)``。"""
        return (self.resource_id, self.parent_id)


# 未删除节点在同一层级内按 original_name 唯一；根层级 parent_id 为 NULL，用 0 占位参与唯一约束。
Index(
    "uq_file_items_active_name",
    FileItem.resource_id,
    func.coalesce(FileItem.parent_id, 0),
    FileItem.original_name,
    unique=True,
    sqlite_where=FileItem.is_deleted.is_(False),
    postgresql_where=FileItem.is_deleted.is_(False),
)
