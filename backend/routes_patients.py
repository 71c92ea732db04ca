from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

import ledger
import patients
from auth import require_user
from responses import ok, paginated
from schemas import PatientIn, PatientUpdate, VisitIn

router = APIRouter(prefix="/patients", tags=["patients"], dependencies=[Depends(require_user)])


@router.get("")
def list_patients(
    search: Optional[str] = None,
    filter: Optional[Literal["today", "month"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    docs, total = patients.list_patients(search, filter, page, limit)
    return paginated(docs, page, limit, total, "Patients retrieved successfully")


@router.get("/stats")
def patient_stats():
    return ok(patients.patient_stats(), "Patient statistics retrieved")


@router.get("/today")
def todays_patients():
    return ok(patients.todays_patients(), "Today's patients retrieved successfully")


@router.get("/search")
def search_patients(q: str = ""):
    return ok(patients.search_patients(q), "Search results")


@router.get("/{patient_id}")
def get_patient(patient_id: str):
    return ok(patients.get_patient(patient_id), "Patient retrieved successfully")


@router.get("/{patient_id}/bills")
def patient_bills(patient_id: str):
    return ok(ledger.invoices_for_patient(patient_id), "Patient bills retrieved successfully")


@router.post("", status_code=201)
def create_patient(body: PatientIn, user=Depends(require_user)):
    doc = patients.create_patient(body.model_dump(exclude_none=True), created_by=user["_id"] if user else None)
    return ok(doc, "Patient created successfully", 201)


@router.put("/{patient_id}")
def update_patient(patient_id: str, body: PatientUpdate):
    doc = patients.update_patient(patient_id, body.model_dump(exclude_none=True))
    return ok(doc, "Patient updated successfully")


@router.put("/{patient_id}/visit")
def record_visit(patient_id: str, body: Optional[VisitIn] = None):
    visit = body.model_dump(exclude_none=True) if body else None
    return ok(patients.record_visit(patient_id, visit), "Patient visit updated successfully")


@router.delete("/{patient_id}")
def delete_patient(patient_id: str):
    patients.delete_patient(patient_id)
    return ok(None, "Patient deleted successfully")
