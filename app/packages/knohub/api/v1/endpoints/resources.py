"""资源管理路由。"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.knohub.api.v1.schemas.resources import (
    ResourceBody,
    ResourceListResponse,
    ResourceMutationResponse,
    ResourceResponse,
)
from app.packages.knohub.core.dependencies import get_db
from app.packages.knohub.services.resource_service import resource_service

router = APIRouter(prefix="/resources", tags=["resources"])


@router.get("", response_model=ResourceListResponse)
def list_resources(db: Session = Depends(get_db)):
    return resource_service.list_resources(db)


# 需在 /{resource_id} 之前注册，避免被整数路径参数抢先匹配
@router.get("/search", response_model=ResourceListResponse)
def search_resources(keyword: str = Query(""), db: Session = Depends(get_db)):
    return resource_service.search_resources(db, keyword)


@router.get("/type/{resource_type}", response_model=ResourceListResponse)
def list_resources_by_type(resource_type: str, db: Session = Depends(get_db)):
    return resource_service.list_by_type(db, resource_type)


@router.get("/{resource_id}", response_model=ResourceResponse)
def get_resource(resource_id: int, db: Session = Depends(get_db)):
    return resource_service.get_resource(db, resource_id)


@router.post("", response_model=ResourceResponse)
def create_resource(payload: ResourceBody, db: Session = Depends(get_db)):
    return resource_service.create_resource(
        db,
        resource_type=payload.type,
        title=payload.title,
        description=payload.description,
        tag=payload.tag,
    )


@router.put("/{resource_id}", response_model=ResourceResponse)
def update_resource(resource_id: int, payload: ResourceBody, db: Session = Depends(get_db)):
    return resource_service.update_resource(
        db,
        resource_id,
        resource_type=payload.type,
        title=payload.title,
        description=payload.description,
        tag=payload.tag,
    )


@router.delete("/{resource_id}", response_model=ResourceMutationResponse)
def delete_resource(resource_id: int, db: Session = Depends(get_db)):
    return resource_service.delete_resource(db, resource_id)
