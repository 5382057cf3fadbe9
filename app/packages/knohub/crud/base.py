"""CRUD 基类：按主键读取、保存与软删除。

写操作默认只 ``flush``，提交交给服务层的 ``unit_of_work``，
这样一次业务操作中的多次写入落在同一个事务里。
"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

from app.packages.knohub.core.timezone import now as tz_now
from app.packages.knohub.models.base import Base, SoftDeleteMixin

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def query(self, db: Session, *, include_deleted: bool = False) -> Query:
        """基础查询，默认排除已软删除的记录。"""
        query = db.query(self.model)
        if issubclass(self.model, SoftDeleteMixin) and not include_deleted:
            query = query.filter(self.model.is_deleted.is_(False))
        return query

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return self.query(db).filter(self.model.id == id).first()

    def get_any(self, db: Session, id: Any) -> Optional[ModelType]:
        """同 ``get``，但包含已软删除的记录。"""
        return self.query(db, include_deleted=True).filter(self.model.id == id).first()

    def create(self, db: Session, obj_in: Dict[str, Any], *, auto_commit: bool = False) -> ModelType:
        return self.save(db, self.model(**obj_in), auto_commit=auto_commit)

    def save(self, db: Session, db_obj: ModelType, *, auto_commit: bool = False) -> ModelType:
        db.add(db_obj)
        if auto_commit:
            db.commit()
            db.refresh(db_obj)
        else:
            # flush 之后即可拿到自增主键
            db.flush()
        return db_obj

    def soft_delete(self, db: Session, db_obj: ModelType, *, auto_commit: bool = False) -> ModelType:
        db_obj.mark_deleted(tz_now())
        return self.save(db, db_obj, auto_commit=auto_commit)
