import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, ReturnDocument

from database import SERVICES, clean, db, find_page, get_document, regex_any, to_object_id
from errors import NotFound, ValidationError
from identifiers import SERVICE_SEQ, insert_with_identifier

logger = logging.getLogger(__name__)

_PROTECTED = {"_id", "serviceId", "createdAt", "updatedAt", "createdBy"}
_SEARCH_FIELDS = ("name", "serviceId")
_SUMMARY_FIELDS = {"serviceId": 1, "name": 1, "price": 1, "duration": 1}


def _check_price(data: Dict[str, Any]) -> None:
    if data.get("price") is not None and float(data["price"]) < 0:
        raise ValidationError.field("price", "Price cannot be negative")


def create_service(data: Dict[str, Any], created_by: Any = None) -> Dict[str, Any]:
    doc = {k: v for k, v in data.items() if k not in _PROTECTED}
    _check_price(doc)
    doc.setdefault("isActive", True)
    if created_by is not None:
        doc["createdBy"] = created_by
    saved = insert_with_identifier(SERVICE_SEQ, doc)
    logger.info("Service %s created (%s)", saved["serviceId"], saved.get("name"))
    return clean(saved)


def load_service(service_id: Any, active_only: bool = False) -> Dict[str, Any]:
    doc = get_document(SERVICES, service_id, "service")
    if doc is None or (active_only and not doc.get("isActive", True)):
        raise NotFound("Service", service_id)
    return doc


def get_service(service_id: Any) -> Dict[str, Any]:
    return clean(load_service(service_id))


def update_service(service_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in data.items() if k not in _PROTECTED and v is not None}
    _check_price(changes)
    changes["updatedAt"] = datetime.utcnow()
    doc = db()[SERVICES].find_one_and_update(
        {"_id": to_object_id(service_id, "service")},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Service", service_id)
    return clean(doc)


def delete_service(service_id: Any) -> None:
    # soft delete; past bills keep pointing at the row
    res = db()[SERVICES].update_one(
        {"_id": to_object_id(service_id, "service")},
        {"$set": {"isActive": False, "updatedAt": datetime.utcnow()}},
    )
    if res.matched_count == 0:
        raise NotFound("Service", service_id)
    logger.info("Service %s deactivated", service_id)


def list_services(search: Optional[str] = None, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
    query: Dict[str, Any] = {"isActive": True}
    if search:
        query.update(regex_any(search, _SEARCH_FIELDS))
    docs, total = find_page(SERVICES, query, page, limit)
    return clean(docs), total


def all_services() -> List[Dict[str, Any]]:
    cursor = db()[SERVICES].find({"isActive": True}, _SUMMARY_FIELDS).sort("name", ASCENDING)
    return clean(list(cursor))


def search_services(q: str) -> List[Dict[str, Any]]:
    if not q:
        return []
    query = {"isActive": True, **regex_any(q, _SEARCH_FIELDS)}
    return clean(list(db()[SERVICES].find(query, _SUMMARY_FIELDS).limit(10)))


def service_stats() -> Dict[str, Any]:
    coll = db()[SERVICES]
    result = list(coll.aggregate([
        {"$match": {"isActive": True}},
        {"$group": {
            "_id": None,
            "totalValue": {"$sum": "$price"},
            "avgPrice": {"$avg": "$price"},
            "minPrice": {"$min": "$price"},
            "maxPrice": {"$max": "$price"},
        }},
    ]))
    stats = result[0] if result else {"totalValue": 0, "avgPrice": 0, "minPrice": 0, "maxPrice": 0}
    return {
        "total": coll.count_documents({"isActive": True}),
        "totalValue": stats["totalValue"],
        "averagePrice": round(stats["avgPrice"] or 0),
        "minPrice": stats["minPrice"],
        "maxPrice": stats["maxPrice"],
    }
