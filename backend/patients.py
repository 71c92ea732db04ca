import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument

from database import PATIENTS, clean, db, find_page, get_document, regex_any, to_object_id
from errors import NotFound
from identifiers import PATIENT_SEQ, insert_with_identifier

logger = logging.getLogger(__name__)

ACTIVE = "Active"
INACTIVE = "Inactive"

_PROTECTED = {"_id", "patientId", "visits", "createdAt", "updatedAt", "createdBy"}
_SEARCH_FIELDS = ("name", "phone", "patientId")


def day_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    now = now or datetime.utcnow()
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def month_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def create_patient(data: Dict[str, Any], created_by: Any = None) -> Dict[str, Any]:
    doc = {k: v for k, v in data.items() if k not in _PROTECTED}
    doc.setdefault("status", ACTIVE)
    doc.setdefault("lastVisit", datetime.utcnow())
    doc["visits"] = []
    if created_by is not None:
        doc["createdBy"] = created_by
    saved = insert_with_identifier(PATIENT_SEQ, doc)
    logger.info("Patient %s registered", saved["patientId"])
    return clean(saved)


def load_patient(patient_id: Any) -> Dict[str, Any]:
    doc = get_document(PATIENTS, patient_id, "patient")
    if doc is None:
        raise NotFound("Patient", patient_id)
    return doc


def get_patient(patient_id: Any) -> Dict[str, Any]:
    return clean(load_patient(patient_id))


def update_patient(patient_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in data.items() if k not in _PROTECTED and v is not None}
    changes["updatedAt"] = datetime.utcnow()
    doc = db()[PATIENTS].find_one_and_update(
        {"_id": to_object_id(patient_id, "patient")},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Patient", patient_id)
    return clean(doc)


def delete_patient(patient_id: Any) -> None:
    res = db()[PATIENTS].delete_one({"_id": to_object_id(patient_id, "patient")})
    if res.deleted_count == 0:
        raise NotFound("Patient", patient_id)
    logger.info("Patient %s deleted", patient_id)


def record_visit(patient_id: Any, visit: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Append a visit entry; recording a visit always reactivates the patient."""
    now = datetime.utcnow()
    entry = {
        "date": now,
        "diagnosis": None,
        "prescription": None,
        "notes": None,
        "doctorName": None,
    }
    entry.update({k: v for k, v in (visit or {}).items() if k in entry and v is not None})
    doc = db()[PATIENTS].find_one_and_update(
        {"_id": to_object_id(patient_id, "patient")},
        {"$push": {"visits": entry}, "$set": {"lastVisit": now, "status": ACTIVE, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Patient", patient_id)
    return clean(doc)


def touch_last_visit(oid: Any, when: datetime) -> None:
    db()[PATIENTS].update_one({"_id": oid}, {"$set": {"lastVisit": when, "updatedAt": when}})


def list_patients(search: Optional[str] = None, period: Optional[str] = None,
                  page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
    query: Dict[str, Any] = {}
    if search:
        query.update(regex_any(search, _SEARCH_FIELDS))
    if period == "today":
        start, end = day_bounds()
        query["lastVisit"] = {"$gte": start, "$lt": end}
    elif period == "month":
        query["lastVisit"] = {"$gte": month_start()}
    docs, total = find_page(PATIENTS, query, page, limit, sort=(("lastVisit", DESCENDING), ("createdAt", DESCENDING)))
    return clean(docs), total


def todays_patients() -> List[Dict[str, Any]]:
    start, end = day_bounds()
    cursor = db()[PATIENTS].find({"lastVisit": {"$gte": start, "$lt": end}}).sort("createdAt", DESCENDING)
    return clean(list(cursor))


def search_patients(q: str) -> List[Dict[str, Any]]:
    if not q:
        return []
    fields = {"patientId": 1, "name": 1, "phone": 1, "age": 1, "gender": 1, "lastVisit": 1, "status": 1}
    return clean(list(db()[PATIENTS].find(regex_any(q, _SEARCH_FIELDS), fields).limit(10)))


def patient_stats() -> Dict[str, int]:
    coll = db()[PATIENTS]
    start, end = day_bounds()
    return {
        "total": coll.count_documents({}),
        "today": coll.count_documents({"lastVisit": {"$gte": start, "$lt": end}}),
        "active": coll.count_documents({"status": ACTIVE}),
        "inactive": coll.count_documents({"status": INACTIVE}),
        "thisMonth": coll.count_documents({"createdAt": {"$gte": month_start()}}),
    }
