"""存储后端抽象与实现：统一封装本地与 S3 的物理文件操作。

物理路径（storage_path）对上层是不透明句柄，形如 ``<resource_id>/<opaque-id>_<文件名>``；
软删除后追加 ``_deleted_<n>`` 后缀。后端调用与数据库事务互不相干，
失败统一抛出 ``StorageIOError``（读取不存在的对象抛出 ``NotFoundError``）。
"""

from __future__ import annotations

import io
import mimetypes
from pathlib import Path
from functools import lru_cache
from typing import Optional
from urllib.parse import quote

from fastapi.responses import FileResponse, RedirectResponse, Response

from app.packages.knohub.core.config import Settings, get_settings
from app.packages.knohub.core.exceptions import (
    AppException,
    InvalidTargetError,
    NotFoundError,
    StorageIOError,
)
from app.packages.knohub.core.logger import logger
from app.packages.knohub.utils.name_utils import storage_prefix


def _norm_mime(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    return mime or "application/octet-stream"


def _split(path: str) -> tuple[str, str]:
    parent, _, name = path.strip("/").rpartition("/")
    return parent, name


def _join(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


class StorageBackend:
    """存储后端接口。"""

    def put(self, *, resource_id: int, storage_name: str, content: bytes) -> str:
        raise NotImplementedError

    def move_with_suffix(self, path: str, suffix: str) -> str:
        raise NotImplementedError

    def rename(self, path: str, new_logical_name: str) -> str:
        """重命名物理文件，保留 opaque-id 前缀：``<prefix>_<new_logical_name>``。"""
        raise NotImplementedError

    def size_of(self, path: str) -> int:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def read_bytes(self, path: str) -> bytes:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def download(self, path: str, *, filename: str) -> Response:
        raise NotImplementedError

    @staticmethod
    def renamed_path(path: str, new_logical_name: str) -> str:
        parent, name = _split(path)
        return _join(parent, f"{storage_prefix(name)}_{new_logical_name}")


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalBackend(StorageBackend):
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - 极端情况下可能失败
            raise StorageIOError(f"无法创建本地根目录: {exc}") from exc

    # 统一的安全路径拼接，防止路径遍历
    def _resolve(self, rel: str) -> Path:
        candidate = (self.root / rel.strip().lstrip("/")).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise InvalidTargetError("非法路径: 越权访问") from exc
        return candidate

    def put(self, *, resource_id: int, storage_name: str, content: bytes) -> str:
        rel = _join(str(resource_id), storage_name)
        target = self._resolve(rel)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            logger.exception("Local upload failed: %s", rel)
            raise StorageIOError(f"文件上传失败: {exc}") from exc
        return rel

    def _move(self, path: str, new_path: str) -> str:
        src = self._resolve(path)
        dst = self._resolve(new_path)
        if src == dst:
            return path
        try:
            src.replace(dst)
        except OSError as exc:
            raise StorageIOError(f"无法修改物理文件: {exc}") from exc
        return new_path

    def move_with_suffix(self, path: str, suffix: str) -> str:
        return self._move(path, path + suffix)

    def rename(self, path: str, new_logical_name: str) -> str:
        return self._move(path, self.renamed_path(path, new_logical_name))

    def size_of(self, path: str) -> int:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError("文件不存在")
        return int(target.stat().st_size)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def read_bytes(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError("未找到物理文件")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageIOError(f"读取文件失败: {exc}") from exc

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        # 允许幂等：不存在则忽略
        target.unlink(missing_ok=True)

    def download(self, path: str, *, filename: str) -> Response:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError("文件不存在")
        disposition = "attachment; filename*=UTF-8''" + quote(filename, safe="")
        return FileResponse(
            str(target),
            media_type=_norm_mime(filename),
            headers={"Content-Disposition": disposition},
        )


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class S3Backend(StorageBackend):
    def __init__(
        self,
        *,
        bucket: str,
        region: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        prefix: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        import boto3

        self.bucket = bucket
        self.prefix = (prefix or "").strip("/")
        self._client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
        )

    # 拼接基于 path_prefix 的对象 key
    def _key(self, rel: str) -> str:
        rel_norm = rel.strip("/")
        return f"{self.prefix}/{rel_norm}" if self.prefix else rel_norm

    @staticmethod
    def _is_missing(exc: Exception) -> bool:
        code = str(getattr(exc, "response", {}).get("Error", {}).get("Code", ""))
        return code in {"404", "NoSuchKey", "NotFound"}

    def put(self, *, resource_id: int, storage_name: str, content: bytes) -> str:
        rel = _join(str(resource_id), storage_name)
        try:
            self._client.upload_fileobj(io.BytesIO(content), self.bucket, self._key(rel))
        except Exception as exc:
            logger.exception("S3 upload failed: %s", rel)
            raise StorageIOError(f"文件上传失败: {exc}") from exc
        return rel

    def _move(self, path: str, new_path: str) -> str:
        if path == new_path:
            return path
        src_key, dst_key = self._key(path), self._key(new_path)
        try:
            self._client.copy_object(Bucket=self.bucket, Key=dst_key, CopySource={"Bucket": self.bucket, "Key": src_key})
            self._client.delete_object(Bucket=self.bucket, Key=src_key)
        except Exception as exc:
            raise StorageIOError(f"无法修改物理文件: {exc}") from exc
        return new_path

    def move_with_suffix(self, path: str, suffix: str) -> str:
        return self._move(path, path + suffix)

    def rename(self, path: str, new_logical_name: str) -> str:
        return self._move(path, self.renamed_path(path, new_logical_name))

    def size_of(self, path: str) -> int:
        try:
            head = self._client.head_object(Bucket=self.bucket, Key=self._key(path))
        except Exception as exc:
            if self._is_missing(exc):
                raise NotFoundError("文件不存在") from exc
            raise StorageIOError(f"读取文件信息失败: {exc}") from exc
        return int(head.get("ContentLength") or 0)

    def exists(self, path: str) -> bool:
        try:
            self.size_of(path)
        except NotFoundError:
            return False
        return True

    def read_bytes(self, path: str) -> bytes:
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=self._key(path))
            return obj["Body"].read()
        except Exception as exc:
            if self._is_missing(exc):
                raise NotFoundError("未找到物理文件") from exc
            raise StorageIOError(f"读取文件失败: {exc}") from exc

    def delete(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=self._key(path))
        except Exception as exc:
            raise StorageIOError(f"删除文件失败: {exc}") from exc

    def download(self, path: str, *, filename: str) -> Response:
        if not self.exists(path):
            raise NotFoundError("文件不存在")
        params = {
            "Bucket": self.bucket,
            "Key": self._key(path),
            "ResponseContentDisposition": f"attachment; filename=\"{filename}\"",
        }
        try:
            url = self._client.generate_presigned_url("get_object", Params=params, ExpiresIn=300)
        except Exception as exc:
            raise StorageIOError(f"预签名 URL 生成失败: {exc}") from exc
        return RedirectResponse(url)


def build_backend(settings: Settings) -> StorageBackend:
    t = (settings.storage_type or "").upper()
    if t == "LOCAL":
        return LocalBackend(settings.upload_directory)
    if t == "S3":
        if not (settings.s3_region and settings.s3_bucket):
            raise AppException("S3 配置不完整")
        return S3Backend(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            prefix=settings.s3_prefix,
            endpoint_url=settings.s3_endpoint_url,
        )
    raise AppException("不支持的存储类型")


@lru_cache
def get_storage_backend() -> StorageBackend:
    """按全局配置构建的进程级存储后端。"""
    return build_backend(get_settings())
