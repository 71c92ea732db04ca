from typing import Optional

from fastapi import APIRouter, Depends, Query

import inventory
from auth import require_user
from responses import ok, paginated
from schemas import MedicineIn, MedicineUpdate, StockAdjust

router = APIRouter(prefix="/medicines", tags=["medicines"], dependencies=[Depends(require_user)])


@router.get("")
def list_medicines(
    search: Optional[str] = None,
    filter: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    docs, total = inventory.list_medicines(search, filter, page, limit)
    return paginated(docs, page, limit, total, "Medicines retrieved successfully")


@router.get("/stats")
def medicine_stats():
    return ok(inventory.medicine_stats(), "Medicine statistics retrieved")


@router.get("/low-stock")
def low_stock():
    return ok(inventory.low_stock_medicines(), "Low stock medicines retrieved successfully")


@router.get("/expiring")
def expiring():
    return ok(inventory.expiring_medicines(), "Expiring medicines retrieved successfully")


@router.get("/search")
def search_medicines(q: str = ""):
    return ok(inventory.search_medicines(q), "Search results")


@router.post("/refresh-status")
def refresh_status():
    return ok({"updated": inventory.refresh_statuses()}, "Medicine statuses refreshed")


@router.get("/{medicine_id}")
def get_medicine(medicine_id: str):
    return ok(inventory.get_medicine(medicine_id), "Medicine retrieved successfully")


@router.post("", status_code=201)
def create_medicine(body: MedicineIn, user=Depends(require_user)):
    doc = inventory.create_medicine(body.model_dump(exclude_none=True), created_by=user["_id"] if user else None)
    return ok(doc, "Medicine created successfully", 201)


@router.put("/{medicine_id}")
def update_medicine(medicine_id: str, body: MedicineUpdate):
    doc = inventory.update_medicine(medicine_id, body.model_dump(exclude_none=True))
    return ok(doc, "Medicine updated successfully")


@router.put("/{medicine_id}/stock")
def update_stock(medicine_id: str, body: StockAdjust):
    doc = inventory.adjust_stock(medicine_id, body.quantity, body.operation)
    return ok(doc, "Stock updated successfully")


@router.delete("/{medicine_id}")
def delete_medicine(medicine_id: str):
    inventory.delete_medicine(medicine_id)
    return ok(None, "Medicine deleted successfully")
