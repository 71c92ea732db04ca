from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

import ledger
from auth import require_user
from identifiers import next_identifier
from responses import ok, paginated
from schemas import BillCreate, BillPaymentUpdate

router = APIRouter(prefix="/bills", tags=["bills"], dependencies=[Depends(require_user)])


@router.get("")
def list_bills(
    search: Optional[str] = None,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    paymentStatus: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    docs, total = ledger.list_invoices(search, startDate, endDate, paymentStatus, page, limit)
    return paginated(docs, page, limit, total, "Bills retrieved successfully")


@router.get("/stats")
def bill_stats():
    return ok(ledger.invoice_stats(), "Bill statistics retrieved")


@router.get("/today")
def todays_bills():
    return ok(ledger.todays_invoices(), "Today's bills retrieved successfully")


@router.get("/patient/{patient_id}")
def bills_by_patient(patient_id: str):
    return ok(ledger.invoices_for_patient(patient_id), "Patient bills retrieved successfully")


@router.get("/{bill_id}")
def get_bill(bill_id: str):
    return ok(ledger.get_invoice(bill_id), "Bill retrieved successfully")


@router.post("", status_code=201)
def create_bill(body: BillCreate, user=Depends(require_user)):
    doc = ledger.create_invoice(
        body.patient,
        medicines=[line.model_dump() for line in body.medicines],
        services=[line.model_dump() for line in body.services],
        consultation_fee=body.consultationFee,
        payment_status=body.paymentStatus,
        payment_method=body.paymentMethod,
        notes=body.notes,
        created_by=user["_id"] if user else None,
    )
    return ok(doc, "Bill created successfully", 201)


@router.put("/{bill_id}")
def update_bill(bill_id: str, body: BillPaymentUpdate):
    doc = ledger.update_invoice_payment(bill_id, body.paymentStatus, body.paymentMethod, body.notes)
    return ok(doc, "Bill updated successfully")


@router.delete("/{bill_id}")
def delete_bill(bill_id: str):
    ledger.delete_invoice(bill_id)
    return ok(None, "Bill deleted successfully")


ids_router = APIRouter(prefix="/identifiers", tags=["identifiers"], dependencies=[Depends(require_user)])


@ids_router.post("/{prefix}/next")
def issue_identifier(prefix: str):
    return ok({"identifier": next_identifier(prefix)}, "Identifier issued")
