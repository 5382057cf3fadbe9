"""资源服务：资源的增删改查，并聚合文件树生成对外展示结构。"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar
from enum import Enum

from sqlalchemy.orm import Session

from app.packages.knohub.core.enums import ResourceTagEnum, ResourceTypeEnum
from app.packages.knohub.core.exceptions import InvalidTargetError, NotFoundError
from app.packages.knohub.core.logger import logger
from app.packages.knohub.core.responses import create_response
from app.packages.knohub.core.timezone import format_date, now as tz_now, today
from app.packages.knohub.crud.resource import resource_crud
from app.packages.knohub.db.session import unit_of_work
from app.packages.knohub.models.resource import Resource
from app.packages.knohub.services.file_service import FileService, file_service

E = TypeVar("E", bound=Enum)


def _parse_enum(enum_cls: Type[E], raw: Optional[str], label: str) -> E:
    # 按枚举名或取值匹配，大小写不敏感：course/COURSE、hot/Hot 均可
    value = (raw or "").strip()
    for member in enum_cls:
        if value.lower() in {member.name.lower(), str(member.value).lower()}:
            return member
    raise InvalidTargetError(f"无效的{label}: {raw}")


class ResourceService:
    """封装资源相关的业务逻辑。"""

    def __init__(self, files: Optional[FileService] = None) -> None:
        self._files = files or file_service

    def list_resources(self, db: Session) -> Dict[str, Any]:
        data = [self._serialize(db, item) for item in resource_crud.list_active(db)]
        return create_response("获取资源列表成功", data)

    def get_resource(self, db: Session, resource_id: int) -> Dict[str, Any]:
        resource = self._get_active(db, resource_id)
        return create_response("获取资源成功", self._serialize(db, resource))

    def list_by_type(self, db: Session, resource_type: str) -> Dict[str, Any]:
        parsed = _parse_enum(ResourceTypeEnum, resource_type, "资源类型")
        data = [self._serialize(db, item) for item in resource_crud.list_by_type(db, parsed.value)]
        return create_response("获取资源列表成功", data)

    def search_resources(self, db: Session, keyword: Optional[str]) -> Dict[str, Any]:
        data = [self._serialize(db, item) for item in resource_crud.search_active(db, keyword or "")]
        return create_response("搜索资源成功", data)

    def create_resource(
        self,
        db: Session,
        *,
        resource_type: str,
        title: str,
        description: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        with unit_of_work(db):
            resource = resource_crud.create(
                db,
                {
                    "type": _parse_enum(ResourceTypeEnum, resource_type, "资源类型").value,
                    "title": title.strip(),
                    "description": description,
                    "tag": _parse_enum(ResourceTagEnum, tag, "资源标签").value if tag else None,
                    "update_date": today(),
                },
            )
        logger.info("Resource created: %s", resource.title)
        return create_response("资源创建成功", self._serialize(db, resource))

    def update_resource(
        self,
        db: Session,
        resource_id: int,
        *,
        resource_type: str,
        title: str,
        description: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Dict[str, Any]:
        """整体更新资源信息；未传 tag 视为清除标签。"""
        with unit_of_work(db):
            resource = self._get_active(db, resource_id)
            resource.type = _parse_enum(ResourceTypeEnum, resource_type, "资源类型").value
            resource.title = title.strip()
            resource.description = description
            resource.tag = _parse_enum(ResourceTagEnum, tag, "资源标签").value if tag else None
            resource.update_date = today()
            resource_crud.save(db, resource)
        logger.info("Resource updated: %s", resource.title)
        return create_response("资源更新成功", self._serialize(db, resource))

    def delete_resource(self, db: Session, resource_id: int) -> Dict[str, Any]:
        """先软删除资源下全部文件与文件夹，再标记资源本身，二者处于同一事务。"""
        with unit_of_work(db):
            resource = self._get_active(db, resource_id)
            self._files.soft_delete_resource_items(db, resource.id)
            resource_crud.soft_delete(db, resource)
        logger.info("Resource soft deleted: %s", resource_id)
        return create_response("资源删除成功", None)

    @staticmethod
    def _get_active(db: Session, resource_id: int) -> Resource:
        resource = resource_crud.get(db, resource_id)
        if resource is None:
            raise NotFoundError(f"资源不存在或已删除: {resource_id}")
        return resource

    def _serialize(self, db: Session, resource: Resource) -> Dict[str, Any]:
        return {
            "id": resource.id,
            "type": resource.type,
            "title": resource.title,
            "description": resource.description,
            "tag": resource.tag,
            "updateDate": format_date(resource.update_date),
            "createDate": format_date(resource.create_time or tz_now()),
            "files": self._files.list_tree(db, resource.id),
        }


resource_service = ResourceService()
