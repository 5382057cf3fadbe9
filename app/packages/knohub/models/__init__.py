"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.knohub.models.file_item import FileItem
from app.packages.knohub.models.resource import Resource

__all__ = [
    "FileItem",
    "Resource",
]
