"""文件树 - 文件/文件夹 操作请求/响应模型。"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from app.packages.knohub.api.v1.schemas.common import ResponseEnvelope


class FileItemOut(BaseModel):
    """文件树节点；仅文件夹携带 children。"""

    id: int
    name: str
    isFolder: bool
    type: Optional[str] = None
    size: Optional[str] = None
    url: Optional[str] = None
    previewUrl: Optional[str] = None
    children: Optional[List["FileItemOut"]] = None


class FolderCreateBody(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    parentFolderId: Optional[int] = None


class RenameBody(BaseModel):
    newName: Optional[str] = Field(default=None, max_length=255)


class ReorderBody(BaseModel):
    dragId: int
    dropId: int
    position: str = Field(..., description="before / after / inside")


FileItemResponse = ResponseEnvelope[FileItemOut]
FileItemListResponse = ResponseEnvelope[List[FileItemOut]]
FilesMutationResponse = ResponseEnvelope[Any]
HtmlPreviewResponse = ResponseEnvelope[str]
