"""文件树服务：资源下文件/文件夹的上传、软删除、重命名、拖拽排序与树形查询。

约定：
- 每个公开操作都在调用方传入的会话上以单个 ``unit_of_work`` 执行，结束时提交一次；
- 同层级（``resource_id`` + ``parent_id``）的重名检查与提交由进程内作用域锁串行化，
  跨进程的并发重名交给数据库部分唯一索引兜底，``IntegrityError`` 统一转换为重名错误；
- 物理文件的读写不在数据库事务内，软删除时移动失败仅记录告警。
"""

from __future__ import annotations

import threading
import weakref
from contextlib import ExitStack, contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from fastapi.responses import Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.knohub.core.config import get_settings
from app.packages.knohub.core.constants import (
    CIRCUIT_FILE_TYPE,
    CIRCUIT_PREVIEW_URL_TEMPLATE,
    DELETED_MARKER,
    DOC_HTML_URL_TEMPLATE,
    DOWNLOAD_URL_TEMPLATE,
    LEGACY_DOC_FILE_TYPE,
)
from app.packages.knohub.core.enums import DropPositionEnum
from app.packages.knohub.core.exceptions import (
    AppException,
    EmptyNameError,
    InvalidTargetError,
    NameConflictError,
    NotFoundError,
    StorageIOError,
    WrongKindError,
)
from app.packages.knohub.core.logger import logger
from app.packages.knohub.crud.file_item import file_item_crud
from app.packages.knohub.crud.resource import resource_crud
from app.packages.knohub.db.session import unit_of_work
from app.packages.knohub.models.file_item import FileItem
from app.packages.knohub.services.storage_backends import StorageBackend, get_storage_backend
from app.packages.knohub.utils.name_utils import (
    display_name_from_storage,
    extract_extension,
    format_file_size,
    new_storage_name,
    normalize_upload_name,
    pin_extension,
)

settings = get_settings()

Scope = Tuple[int, Optional[int]]


class ScopeLockRegistry:
    """按同层级作用域分配的进程内锁。

    多个作用域总是按排序后的顺序加锁，避免拖拽跨层级时互相等待。
    锁只被持有者强引用，空闲作用域的锁随之回收。
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[Tuple[int, int], Any]" = weakref.WeakValueDictionary()

    @staticmethod
    def _key(scope: Scope) -> Tuple[int, int]:
        resource_id, parent_id = scope
        return (int(resource_id), int(parent_id or 0))

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, scope: Scope) -> Any:
        key = self._key(scope)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, *scopes: Scope) -> Iterator[None]:
        keys = sorted({self._key(scope) for scope in scopes})
        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self.lock_for(key))
            yield


@contextmanager
def _name_conflict_guard(message: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        logger.warning("Unique name index rejected write: %s", exc.orig)
        raise NameConflictError(message) from exc


class FileService:
    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        locks: Optional[ScopeLockRegistry] = None,
    ) -> None:
        self._storage = storage
        self._locks = locks if locks is not None else ScopeLockRegistry()

    @property
    def storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage_backend()
        return self._storage

    # ----------------------------
    # 上传与新建
    # ----------------------------
    def upload(
        self,
        db: Session,
        *,
        resource_id: int,
        folder_id: Optional[int],
        filename: Optional[str],
        content: bytes,
    ) -> FileItem:
        """上传单个文件到资源根层级或指定文件夹，追加到同层级末尾。"""
        name = normalize_upload_name(filename)
        stored_path: Optional[str] = None
        try:
            with self._locks.hold((resource_id, folder_id)), _name_conflict_guard(
                f"同名文件已存在: {name}"
            ), unit_of_work(db):
                self._require_resource(db, resource_id)
                self._require_parent_folder(db, resource_id, folder_id, missing_msg=f"文件夹不存在: {folder_id}")
                if file_item_crud.exists_active_name(db, resource_id=resource_id, parent_id=folder_id, name=name):
                    raise NameConflictError(f"同名文件已存在: {name}")

                storage_name = new_storage_name(name)
                stored_path = self.storage.put(resource_id=resource_id, storage_name=storage_name, content=content)
                extension = extract_extension(name).lower()
                item = FileItem(
                    name=name,
                    original_name=name,
                    is_folder=False,
                    type=extension or None,
                    size=format_file_size(len(content)),
                    size_bytes=len(content),
                    url=self._download_url(resource_id, storage_name),
                    storage_path=stored_path,
                    parent_id=folder_id,
                    resource_id=resource_id,
                    display_order=file_item_crud.count_active_siblings(
                        db, resource_id=resource_id, parent_id=folder_id
                    ),
                )
                file_item_crud.save(db, item)
        except Exception:
            if stored_path is not None:
                self._discard_blob(stored_path)
            raise
        logger.info("File uploaded: %s to resource %s, folder %s", name, resource_id, folder_id)
        return item

    def upload_batch(
        self,
        db: Session,
        *,
        resource_id: int,
        folder_id: Optional[int],
        files: Iterable[Tuple[Optional[str], bytes]],
    ) -> List[FileItem]:
        """逐个上传；遇到第一个失败即停止，之前已成功的文件保持提交状态。"""
        return [
            self.upload(db, resource_id=resource_id, folder_id=folder_id, filename=filename, content=content)
            for filename, content in files
        ]

    def create_folder(
        self,
        db: Session,
        *,
        resource_id: int,
        parent_folder_id: Optional[int],
        name: Optional[str],
    ) -> FileItem:
        folder_name = (name or "").strip()
        if not folder_name:
            raise EmptyNameError()
        with self._locks.hold((resource_id, parent_folder_id)), _name_conflict_guard(
            f"同名文件夹已存在: {folder_name}"
        ), unit_of_work(db):
            self._require_resource(db, resource_id)
            self._require_parent_folder(
                db, resource_id, parent_folder_id, missing_msg=f"父文件夹不存在: {parent_folder_id}"
            )
            if file_item_crud.exists_active_name(
                db, resource_id=resource_id, parent_id=parent_folder_id, name=folder_name
            ):
                raise NameConflictError(f"同名文件夹已存在: {folder_name}")
            folder = FileItem(
                name=folder_name,
                original_name=folder_name,
                is_folder=True,
                parent_id=parent_folder_id,
                resource_id=resource_id,
                display_order=file_item_crud.count_active_siblings(
                    db, resource_id=resource_id, parent_id=parent_folder_id
                ),
            )
            file_item_crud.save(db, folder)
        logger.info("Folder created: %s in resource %s", folder_name, resource_id)
        return folder

    # ----------------------------
    # 软删除
    # ----------------------------
    def soft_delete_file(self, db: Session, file_id: int) -> FileItem:
        item = self._get_active(db, file_id, f"文件不存在: {file_id}")
        if item.is_folder:
            raise WrongKindError("这是文件夹，请使用文件夹删除接口")
        with self._locks.hold(item.scope), unit_of_work(db):
            self._soft_delete_item(db, item)
            self._compact_scope(db, item.scope)
        logger.info("File soft deleted: %s with sequence %s", item.original_name, item.delete_sequence)
        return item

    def soft_delete_folder(self, db: Session, folder_id: int) -> FileItem:
        """递归软删除文件夹：先处理子项（子文件夹深度优先），最后删除文件夹本身。"""
        folder = self._get_active(db, folder_id, f"文件夹不存在: {folder_id}")
        if not folder.is_folder:
            raise WrongKindError("这是文件，请使用文件删除接口")
        with self._locks.hold(folder.scope), unit_of_work(db):
            self._soft_delete_tree(db, folder)
            self._compact_scope(db, folder.scope)
        logger.info("Folder soft deleted: %s", folder.original_name)
        return folder

    def soft_delete_resource_items(self, db: Session, resource_id: int) -> int:
        """软删除资源下所有未删除的节点，返回根层级被删除的数量。"""
        with self._locks.hold((resource_id, None)), unit_of_work(db):
            roots = file_item_crud.list_roots(db, resource_id, ordered=False)
            for item in roots:
                if item.is_folder:
                    self._soft_delete_tree(db, item)
                else:
                    self._soft_delete_item(db, item)
        if roots:
            logger.info("Soft deleted %s root items of resource %s", len(roots), resource_id)
        return len(roots)

    # ----------------------------
    # 重命名与排序
    # ----------------------------
    def rename(self, db: Session, *, item_id: int, new_name: Optional[str]) -> FileItem:
        """重命名文件或文件夹；文件保持原扩展名，物理文件名保留随机前缀。"""
        candidate = (new_name or "").strip()
        if not candidate:
            raise EmptyNameError()
        item = self._get_active(db, item_id, f"文件或文件夹不存在: {item_id}")
        target_name = candidate if item.is_folder else pin_extension(candidate, item.type)

        moved: Optional[Tuple[str, str]] = None
        try:
            with self._locks.hold(item.scope), _name_conflict_guard(
                f"同名文件或文件夹已存在: {target_name}"
            ), unit_of_work(db):
                if file_item_crud.exists_active_name(
                    db,
                    resource_id=item.resource_id,
                    parent_id=item.parent_id,
                    name=target_name,
                    exclude_id=item.id,
                ):
                    raise NameConflictError(f"同名文件或文件夹已存在: {target_name}")
                if not item.is_folder and item.storage_path:
                    moved = self._rename_blob(item, target_name)
                item.name = target_name
                item.original_name = target_name
                file_item_crud.save(db, item)
        except Exception:
            if moved is not None:
                self._restore_blob(*moved)
            raise
        logger.info("Renamed item %s to %s", item_id, target_name)
        return item

    def reorder(self, db: Session, *, drag_id: int, drop_id: int, position: str) -> None:
        """拖拽排序：before/after 放到目标项同层级的前后，inside 追加到目标文件夹末尾。"""
        if drag_id == drop_id:
            return
        try:
            where = DropPositionEnum(position)
        except ValueError as exc:
            raise InvalidTargetError(f"无效的拖拽位置: {position}") from exc

        drag = self._get_active(db, drag_id, f"拖拽项不存在: {drag_id}")
        drop = self._get_active(db, drop_id, f"目标项不存在: {drop_id}")
        if drag.resource_id != drop.resource_id:
            raise InvalidTargetError("不能跨资源移动")
        if where is DropPositionEnum.INSIDE:
            if not drop.is_folder:
                raise InvalidTargetError("只能将文件拖入文件夹")
            new_parent_id: Optional[int] = drop.id
        else:
            new_parent_id = drop.parent_id

        old_scope = drag.scope
        new_scope: Scope = (drag.resource_id, new_parent_id)
        moving = old_scope != new_scope

        with self._locks.hold(old_scope, new_scope), _name_conflict_guard(
            f"同名文件或文件夹已存在: {drag.original_name}"
        ), unit_of_work(db):
            self._ensure_no_cycle(db, drag, new_parent_id)
            if moving and file_item_crud.exists_active_name(
                db,
                resource_id=drag.resource_id,
                parent_id=new_parent_id,
                name=drag.original_name,
                exclude_id=drag.id,
            ):
                raise NameConflictError(f"同名文件或文件夹已存在: {drag.original_name}")

            siblings = [
                s
                for s in file_item_crud.list_siblings(db, resource_id=drag.resource_id, parent_id=new_parent_id)
                if s.id != drag.id
            ]
            if where is DropPositionEnum.INSIDE:
                index = len(siblings)
            else:
                drop_index = next((i for i, s in enumerate(siblings) if s.id == drop.id), None)
                if drop_index is None:
                    index = len(siblings)
                else:
                    index = drop_index if where is DropPositionEnum.BEFORE else drop_index + 1
            siblings.insert(index, drag)

            drag.parent_id = new_parent_id
            for order, sibling in enumerate(siblings):
                sibling.display_order = order
            db.flush()
            if moving:
                self._compact_scope(db, old_scope)
        logger.info("Reordered item %s to %s relative to %s", drag_id, where.value, drop_id)

    # ----------------------------
    # 查询与下载
    # ----------------------------
    def list_tree(self, db: Session, resource_id: int) -> List[Dict[str, Any]]:
        """资源下未删除节点的树形结构，每一层按 display_order 排序。"""
        return [self._to_tree_dto(db, item) for item in file_item_crud.list_roots(db, resource_id)]

    def resolve_download(self, resource_id: int, storage_name: str) -> Response:
        path = f"{resource_id}/{storage_name}"
        return self.storage.download(path, filename=display_name_from_storage(storage_name))

    @staticmethod
    def to_dto(item: FileItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "name": item.name,
            "isFolder": bool(item.is_folder),
            "type": item.type,
            "size": item.size,
            "url": item.url,
            "previewUrl": FileService._preview_url(item),
        }

    # ----------------------------
    # 内部工具
    # ----------------------------
    def _to_tree_dto(self, db: Session, item: FileItem) -> Dict[str, Any]:
        dto = self.to_dto(item)
        if item.is_folder:
            dto["children"] = [self._to_tree_dto(db, child) for child in file_item_crud.list_children(db, item.id)]
        return dto

    @staticmethod
    def _preview_url(item: FileItem) -> Optional[str]:
        if item.is_folder or not item.type:
            return None
        if item.type == CIRCUIT_FILE_TYPE:
            return CIRCUIT_PREVIEW_URL_TEMPLATE.format(prefix=settings.api_prefix, file_id=item.id)
        if item.type == LEGACY_DOC_FILE_TYPE:
            return DOC_HTML_URL_TEMPLATE.format(prefix=settings.api_prefix, file_id=item.id)
        return None

    @staticmethod
    def _download_url(resource_id: int, storage_name: str) -> str:
        return DOWNLOAD_URL_TEMPLATE.format(
            prefix=settings.api_prefix, resource_id=resource_id, storage_name=storage_name
        )

    @staticmethod
    def _get_active(db: Session, item_id: int, missing_msg: str) -> FileItem:
        item = file_item_crud.get(db, item_id)
        if item is None:
            raise NotFoundError(missing_msg)
        return item

    @staticmethod
    def _require_resource(db: Session, resource_id: int) -> None:
        if resource_crud.get(db, resource_id) is None:
            raise NotFoundError(f"资源不存在: {resource_id}")

    @staticmethod
    def _require_parent_folder(
        db: Session, resource_id: int, folder_id: Optional[int], *, missing_msg: str
    ) -> Optional[FileItem]:
        if folder_id is None:
            return None
        folder = file_item_crud.get(db, folder_id)
        if folder is None:
            raise NotFoundError(missing_msg)
        if not folder.is_folder:
            raise InvalidTargetError("目标不是文件夹")
        if folder.resource_id != resource_id:
            raise InvalidTargetError("目标文件夹不属于该资源")
        return folder

    @staticmethod
    def _ensure_no_cycle(db: Session, drag: FileItem, new_parent_id: Optional[int]) -> None:
        seen: set[int] = set()
        current_id = new_parent_id
        while current_id is not None and current_id not in seen:
            if current_id == drag.id:
                raise InvalidTargetError("不能将文件夹移动到自身或其子文件夹中")
            seen.add(current_id)
            parent = file_item_crud.get_any(db, current_id)
            current_id = parent.parent_id if parent is not None else None

    @staticmethod
    def _compact_scope(db: Session, scope: Scope) -> None:
        resource_id, parent_id = scope
        siblings: Sequence[FileItem] = file_item_crud.list_siblings(db, resource_id=resource_id, parent_id=parent_id)
        changed = False
        for order, sibling in enumerate(siblings):
            if sibling.display_order != order:
                sibling.display_order = order
                changed = True
        if changed:
            db.flush()

    def _soft_delete_tree(self, db: Session, folder: FileItem) -> None:
        for child in file_item_crud.list_children(db, folder.id, ordered=False):
            if child.is_folder:
                self._soft_delete_tree(db, child)
            else:
                self._soft_delete_item(db, child)
        self._soft_delete_item(db, folder)

    def _soft_delete_item(self, db: Session, item: FileItem) -> None:
        """分配删除序号并标记删除；文件同时把物理文件移动到带删除后缀的路径。"""
        max_sequence = file_item_crud.max_delete_sequence(
            db, resource_id=item.resource_id, parent_id=item.parent_id, original_name=item.original_name
        )
        next_sequence = (max_sequence or 0) + 1
        suffix = f"{DELETED_MARKER}{next_sequence}"

        if not item.is_folder and item.storage_path:
            item.storage_path = self._move_blob_aside(item.storage_path, suffix)
        item.delete_sequence = next_sequence
        item.name = f"{item.original_name}{suffix}"
        file_item_crud.soft_delete(db, item)

    def _move_blob_aside(self, path: str, suffix: str) -> str:
        try:
            if not self.storage.exists(path):
                logger.warning("Physical file missing, skip rename on delete: %s", path)
                return path
            return self.storage.move_with_suffix(path, suffix)
        except StorageIOError as exc:
            logger.warning("Failed to rename physical file: %s", exc.message)
            return path

    def _rename_blob(self, item: FileItem, new_name: str) -> Optional[Tuple[str, str]]:
        """重命名物理文件并同步 url/storage_path/type/size；返回 ``(旧路径, 新路径)``。"""
        old_path = item.storage_path or ""
        if not self.storage.exists(old_path):
            logger.warning("Physical file not found for rename: %s", old_path)
            return None
        try:
            new_path = self.storage.rename(old_path, new_name)
        except StorageIOError as exc:
            logger.warning("Failed to rename physical file: %s", exc.message)
            raise StorageIOError("重命名文件失败: 无法修改物理文件") from exc
        if new_path == old_path:
            return None

        item.storage_path = new_path
        item.url = self._download_url(item.resource_id, new_path.rsplit("/", 1)[-1])
        extension = extract_extension(new_name)
        if extension:
            item.type = extension.lower()
        try:
            size_bytes = self.storage.size_of(new_path)
            item.size_bytes = size_bytes
            item.size = format_file_size(size_bytes)
        except AppException as exc:
            logger.warning("Failed to refresh file size after rename: %s", exc.message)
        return (old_path, new_path)

    def _restore_blob(self, old_path: str, new_path: str) -> None:
        try:
            self.storage.rename(new_path, display_name_from_storage(old_path.rsplit("/", 1)[-1]))
        except StorageIOError as exc:
            logger.warning("Failed to restore physical file %s: %s", new_path, exc.message)

    def _discard_blob(self, path: str) -> None:
        try:
            self.storage.delete(path)
        except StorageIOError as exc:
            logger.warning("Failed to discard orphan blob %s: %s", path, exc.message)


file_service = FileService()
