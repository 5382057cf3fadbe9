"""API v1 汇总路由：统一挂载所有版本化的子路由。"""

from fastapi import APIRouter

from app.packages.knohub.api.v1.endpoints import files, metrics, resources

api_router = APIRouter()
api_router.include_router(resources.router)
api_router.include_router(files.router)
api_router.include_router(metrics.router)
