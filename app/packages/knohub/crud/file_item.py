"""FileItem CRUD：文件树的同层级查询、重名判断与删除序号统计。"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from app.packages.knohub.crud.base import CRUDBase
from app.packages.knohub.models.file_item import FileItem


class CRUDFileItem(CRUDBase[FileItem]):
    def _scope(self, query: Query, *, resource_id: int, parent_id: Optional[int]) -> Query:
        query = query.filter(FileItem.resource_id == resource_id)
        if parent_id is None:
            return query.filter(FileItem.parent_id.is_(None))
        return query.filter(FileItem.parent_id == parent_id)

    def list_children(self, db: Session, parent_id: int, *, ordered: bool = True) -> List[FileItem]:
        """列出文件夹下未删除的直接子节点。"""
        query = self.query(db).filter(FileItem.parent_id == parent_id)
        if ordered:
            query = query.order_by(FileItem.display_order.asc(), FileItem.id.asc())
        return query.all()

    def list_roots(self, db: Session, resource_id: int, *, ordered: bool = True) -> List[FileItem]:
        """列出资源根层级未删除的节点。"""
        query = self._scope(self.query(db), resource_id=resource_id, parent_id=None)
        if ordered:
            query = query.order_by(FileItem.display_order.asc(), FileItem.id.asc())
        return query.all()

    def list_siblings(
        self, db: Session, *, resource_id: int, parent_id: Optional[int], ordered: bool = True
    ) -> List[FileItem]:
        if parent_id is None:
            return self.list_roots(db, resource_id, ordered=ordered)
        return self.list_children(db, parent_id, ordered=ordered)

    def count_active_siblings(self, db: Session, *, resource_id: int, parent_id: Optional[int]) -> int:
        query = self._scope(self.query(db), resource_id=resource_id, parent_id=parent_id)
        return int(query.with_entities(func.count(FileItem.id)).scalar() or 0)

    def exists_active_name(
        self,
        db: Session,
        *,
        resource_id: int,
        parent_id: Optional[int],
        name: str,
        exclude_id: Optional[int] = None,
    ) -> bool:
        """同层级是否已有未删除的同名节点（按 original_name 比较）。"""
        query = self._scope(self.query(db), resource_id=resource_id, parent_id=parent_id)
        query = query.filter(FileItem.original_name == name)
        if exclude_id is not None:
            query = query.filter(FileItem.id != exclude_id)
        return db.query(query.exists()).scalar()

    def max_delete_sequence(
        self, db: Session, *, resource_id: int, parent_id: Optional[int], original_name: str
    ) -> Optional[int]:
        """统计同名同层级（含已删除）的最大删除序号，无记录时返回 ``None``。"""
        query = self._scope(self.query(db, include_deleted=True), resource_id=resource_id, parent_id=parent_id)
        query = query.filter(FileItem.original_name == original_name)
        return query.with_entities(func.max(FileItem.delete_sequence)).scalar()


file_item_crud = CRUDFileItem(FileItem)
