"""Resource CRUD 封装。"""

from __future__ import annotations

from typing import List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.packages.knohub.crud.base import CRUDBase
from app.packages.knohub.models.resource import Resource


class CRUDResource(CRUDBase[Resource]):
    def list_active(self, db: Session) -> List[Resource]:
        # 最近更新的在前
        return self.query(db).order_by(Resource.update_date.desc(), Resource.id.desc()).all()

    def list_by_type(self, db: Session, resource_type: str) -> List[Resource]:
        query = self.query(db).filter(Resource.type == resource_type)
        return query.order_by(Resource.update_date.desc(), Resource.id.desc()).all()

    def search_active(self, db: Session, keyword: str) -> List[Resource]:
        """按标题或描述做不区分大小写的子串匹配。"""
        pattern = f"%{(keyword or '').strip().lower()}%"
        query = self.query(db).filter(
            or_(
                func.lower(Resource.title).like(pattern),
                func.lower(func.coalesce(Resource.description, "")).like(pattern),
            )
        )
        return query.order_by(Resource.update_date.desc(), Resource.id.desc()).all()


resource_crud = CRUDResource(Resource)
