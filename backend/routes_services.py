from typing import Optional

from fastapi import APIRouter, Depends, Query

import catalog
from auth import require_user
from responses import ok, paginated
from schemas import ServiceIn, ServiceUpdate

router = APIRouter(prefix="/services", tags=["services"], dependencies=[Depends(require_user)])


@router.get("")
def list_services(search: Optional[str] = None, page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    docs, total = catalog.list_services(search, page, limit)
    return paginated(docs, page, limit, total, "Services retrieved successfully")


@router.get("/all")
def all_services():
    return ok(catalog.all_services(), "Services retrieved successfully")


@router.get("/stats")
def service_stats():
    return ok(catalog.service_stats(), "Service statistics retrieved")


@router.get("/search")
def search_services(q: str = ""):
    return ok(catalog.search_services(q), "Search results")


@router.get("/{service_id}")
def get_service(service_id: str):
    return ok(catalog.get_service(service_id), "Service retrieved successfully")


@router.post("", status_code=201)
def create_service(body: ServiceIn, user=Depends(require_user)):
    doc = catalog.create_service(body.model_dump(exclude_none=True), created_by=user["_id"] if user else None)
    return ok(doc, "Service created successfully", 201)


@router.put("/{service_id}")
def update_service(service_id: str, body: ServiceUpdate):
    return ok(catalog.update_service(service_id, body.model_dump(exclude_none=True)), "Service updated successfully")


@router.delete("/{service_id}")
def delete_service(service_id: str):
    catalog.delete_service(service_id)
    return ok(None, "Service deleted successfully")
