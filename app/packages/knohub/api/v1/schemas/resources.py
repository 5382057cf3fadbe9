"""资源相关的请求与响应模型。"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from app.packages.knohub.api.v1.schemas.common import ResponseEnvelope
from app.packages.knohub.api.v1.schemas.files import FileItemOut


class ResourceBody(BaseModel):
    """创建/更新资源的字段；type 与 tag 大小写不敏感，由服务层校验取值。"""

    type: str = Field(..., min_length=1, max_length=16)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    tag: Optional[str] = Field(default=None, max_length=16)


class ResourceOut(BaseModel):
    id: int
    type: str
    title: str
    description: Optional[str] = None
    tag: Optional[str] = None
    updateDate: Optional[str] = None
    createDate: Optional[str] = None
    files: List[FileItemOut] = Field(default_factory=list)


ResourceResponse = ResponseEnvelope[ResourceOut]
ResourceListResponse = ResponseEnvelope[List[ResourceOut]]
ResourceMutationResponse = ResponseEnvelope[Any]
