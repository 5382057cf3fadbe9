"""运行指标路由。"""

from fastapi import APIRouter

from app.packages.knohub.api.v1.schemas.common import ResponseEnvelope
from app.packages.knohub.core.responses import create_response
from app.packages.knohub.services.visitor_service import visitor_service

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/active-users", response_model=ResponseEnvelope[int])
def active_users():
    """滚动窗口内的独立访客数。"""
    return create_response("获取访客数成功", visitor_service.unique_visitor_count())
