"""文件与文件夹操作路由。

变更类接口（上传/新建/删除/重命名/排序）返回统一响应结构；
下载与电路图预览直接返回文件流。
"""

from __future__ import annotations

import mimetypes
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.packages.knohub.api.v1.schemas.files import (
    FileItemListResponse,
    FileItemResponse,
    FilesMutationResponse,
    FolderCreateBody,
    HtmlPreviewResponse,
    RenameBody,
    ReorderBody,
)
from app.packages.knohub.core.config import get_settings
from app.packages.knohub.core.dependencies import get_db
from app.packages.knohub.core.exceptions import PayloadTooLargeError
from app.packages.knohub.core.responses import create_response
from app.packages.knohub.services.file_service import file_service
from app.packages.knohub.services.preview_service import preview_service

router = APIRouter(prefix="/files", tags=["files"])
settings = get_settings()


def _too_large() -> PayloadTooLargeError:
    return PayloadTooLargeError(f"文件过大，单个文件或请求大小不能超过 {settings.max_upload_size_mb}MB")


def _read_upload(upload: UploadFile) -> bytes:
    limit = settings.max_upload_size_bytes
    content = upload.file.read(limit + 1)
    if len(content) > limit:
        raise _too_large()
    return content


@router.post("/reorder", response_model=FilesMutationResponse)
def reorder(payload: ReorderBody, db: Session = Depends(get_db)):
    file_service.reorder(db, drag_id=payload.dragId, drop_id=payload.dropId, position=payload.position)
    return create_response("排序成功", None)


@router.post("/{resource_id}/upload", response_model=FileItemResponse)
def upload_file(
    resource_id: int,
    folder_id: Optional[int] = Query(None, alias="folderId"),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    item = file_service.upload(
        db,
        resource_id=resource_id,
        folder_id=folder_id,
        filename=file.filename,
        content=_read_upload(file),
    )
    return create_response("文件上传成功", file_service.to_dto(item))


@router.post("/{resource_id}/upload/batch", response_model=FileItemListResponse)
def upload_files(
    resource_id: int,
    folder_id: Optional[int] = Query(None, alias="folderId"),
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
):
    payloads = [(up.filename, _read_upload(up)) for up in files]
    if sum(len(content) for _, content in payloads) > settings.max_upload_size_bytes:
        raise _too_large()
    items = file_service.upload_batch(db, resource_id=resource_id, folder_id=folder_id, files=payloads)
    return create_response("批量上传成功", [file_service.to_dto(item) for item in items])


@router.post("/{resource_id}/folders", response_model=FileItemResponse)
def create_folder(resource_id: int, payload: FolderCreateBody, db: Session = Depends(get_db)):
    folder = file_service.create_folder(
        db,
        resource_id=resource_id,
        parent_folder_id=payload.parentFolderId,
        name=payload.name,
    )
    return create_response("文件夹创建成功", file_service.to_dto(folder))


@router.delete("/folders/{folder_id}", response_model=FilesMutationResponse)
def delete_folder(folder_id: int, db: Session = Depends(get_db)):
    file_service.soft_delete_folder(db, folder_id)
    return create_response("文件夹删除成功", None)


@router.delete("/{file_id}", response_model=FilesMutationResponse)
def delete_file(file_id: int, db: Session = Depends(get_db)):
    file_service.soft_delete_file(db, file_id)
    return create_response("文件删除成功", None)


@router.put("/{file_id}/rename", response_model=FileItemResponse)
def rename(file_id: int, payload: RenameBody, db: Session = Depends(get_db)):
    item = file_service.rename(db, item_id=file_id, new_name=payload.newName)
    return create_response("重命名成功", file_service.to_dto(item))


@router.get("/{file_id}/html", response_model=HtmlPreviewResponse)
def preview_doc_as_html(file_id: int, db: Session = Depends(get_db)):
    return create_response("文档预览成功", preview_service.render_doc_html(db, file_id))


@router.get("/{file_id}/preview")
def preview_circuit(file_id: int, db: Session = Depends(get_db)):
    path = preview_service.get_circuit_preview(db, file_id)
    media_type = mimetypes.guess_type(path.name)[0] or "image/png"
    return FileResponse(
        str(path),
        media_type=media_type,
        headers={"Content-Disposition": f'inline; filename="{path.name}"'},
    )


@router.get("/{resource_id}/download/{filename}")
def download_file(resource_id: int, filename: str):
    return file_service.resolve_download(resource_id, filename)


@router.get("/{resource_id}", response_model=FileItemListResponse)
def list_files(resource_id: int, db: Session = Depends(get_db)):
    return create_response("获取文件列表成功", file_service.list_tree(db, resource_id))
