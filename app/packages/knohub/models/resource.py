"""资源模型：一组课程/技术/资讯资料，拥有其根层级的文件与文件夹。"""

from datetime import date
from typing import Optional

from sqlalchemy import Date, String
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.knohub.models.base import Base, SoftDeleteMixin, TimestampMixin


class Resource(TimestampMixin, SoftDeleteMixin, Base):
    """资源记录。

    说明：
    - ``type`` 取值见 ``ResourceTypeEnum``（course/tech/info）；
    - ``tag`` 可空，取值见 ``ResourceTagEnum``（New/Hot/Rec）；
    - ``update_date`` 在每次更新时刷新为当天日期，用于前端展示；
    - 文件树不通过 ORM 关系挂载，由 ``file_items.resource_id`` 反向关联。
    """

    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    type: Mapped[str] = mapped_column(String(16), index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    tag: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    update_date: Mapped[date] = mapped_column(Date)
