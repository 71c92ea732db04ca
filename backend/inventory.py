import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, ReturnDocument

from config import settings
from database import MEDICINES, clean, db, find_page, get_document, regex_any, to_object_id
from errors import NotFound, ValidationError
from identifiers import MEDICINE_SEQ, insert_with_identifier

logger = logging.getLogger(__name__)

IN_STOCK = "in-stock"
LOW_STOCK = "low-stock"
EXPIRING_SOON = "expiring-soon"
OUT_OF_STOCK = "out-of-stock"
STATUSES = (IN_STOCK, LOW_STOCK, EXPIRING_SOON, OUT_OF_STOCK)

STOCK_OPERATIONS = ("set", "add", "subtract")

# fields a caller may never write directly
_PROTECTED = {"_id", "medicineId", "status", "createdAt", "updatedAt", "createdBy"}


def as_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    if value.tzinfo is not None:
        # stored and compared as naive UTC
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def medicine_status(stock: int, expiry_date: Any, min_stock_level: Optional[int] = None,
                    now: Optional[datetime] = None) -> str:
    """Classify a medicine. First match wins:

    out-of-stock (stock == 0), expiring-soon (expiry within the warning
    window), low-stock (stock <= min level), otherwise in-stock.
    """
    if min_stock_level is None:
        min_stock_level = settings.DEFAULT_MIN_STOCK_LEVEL
    now = now or datetime.utcnow()
    if stock == 0:
        return OUT_OF_STOCK
    expiry = as_datetime(expiry_date)
    if expiry is None:
        return IN_STOCK
    if expiry <= now + timedelta(days=settings.EXPIRY_WARNING_DAYS):
        return EXPIRING_SOON
    if stock <= min_stock_level:
        return LOW_STOCK
    return IN_STOCK


def status_of(doc: Dict[str, Any], now: Optional[datetime] = None) -> str:
    return medicine_status(int(doc.get("stock") or 0), doc.get("expiryDate"), doc.get("minStockLevel"), now)


def profit_per_unit(buying_price: float, selling_price: float) -> float:
    return round(selling_price - buying_price, 2)


def profit_margin(buying_price: float, selling_price: float) -> float:
    if not buying_price:
        return 0.0
    return round((selling_price - buying_price) / buying_price * 100, 2)


def present(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = clean(doc)
    buying = float(doc.get("buyingPrice") or 0)
    selling = float(doc.get("sellingPrice") or 0)
    out["profitMargin"] = profit_margin(buying, selling)
    out["profitPerUnit"] = profit_per_unit(buying, selling)
    return out


def persist_status(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Store the status derived from ``doc``'s stock/expiry.

    The write is guarded on the stock value the status was computed from; if
    another writer moved the stock in between, that writer stores its own.
    """
    status = status_of(doc)
    if doc.get("status") != status:
        db()[MEDICINES].update_one(
            {"_id": doc["_id"], "stock": doc.get("stock")},
            {"$set": {"status": status}},
        )
        doc["status"] = status
    return doc


def _check_fields(data: Dict[str, Any], partial: bool = False) -> None:
    errors = []
    for key in ("buyingPrice", "sellingPrice"):
        if key in data and data[key] is not None and float(data[key]) < 0:
            errors.append({"field": key, "message": f"{key} cannot be negative"})
    if "stock" in data and data["stock"] is not None and int(data["stock"]) < 0:
        errors.append({"field": "stock", "message": "Stock cannot be negative"})
    if "minStockLevel" in data and data["minStockLevel"] is not None and int(data["minStockLevel"]) < 0:
        errors.append({"field": "minStockLevel", "message": "Minimum stock level cannot be negative"})
    expiry = data.get("expiryDate")
    if (not partial or "expiryDate" in data) and as_datetime(expiry) is None:
        message = "Expiry date is required" if expiry in (None, "") else "Invalid expiry date"
        errors.append({"field": "expiryDate", "message": message})
    if errors:
        raise ValidationError("Validation Error", errors)


def create_medicine(data: Dict[str, Any], created_by: Any = None) -> Dict[str, Any]:
    doc = {k: v for k, v in data.items() if k not in _PROTECTED}
    _check_fields(doc)
    doc["expiryDate"] = as_datetime(doc["expiryDate"])
    doc.setdefault("stock", 0)
    doc.setdefault("minStockLevel", settings.DEFAULT_MIN_STOCK_LEVEL)
    doc["status"] = status_of(doc)
    if created_by is not None:
        doc["createdBy"] = created_by
    saved = insert_with_identifier(MEDICINE_SEQ, doc)
    logger.info("Medicine %s created (%s, stock=%s)", saved["medicineId"], saved.get("name"), saved["stock"])
    return present(saved)


def _load(medicine_id: Any) -> Dict[str, Any]:
    doc = get_document(MEDICINES, medicine_id, "medicine")
    if doc is None:
        raise NotFound("Medicine", medicine_id)
    return doc


def get_medicine(medicine_id: Any) -> Dict[str, Any]:
    return present(_load(medicine_id))


def update_medicine(medicine_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in data.items() if k not in _PROTECTED and v is not None}
    _check_fields(changes, partial=True)
    if "expiryDate" in changes:
        changes["expiryDate"] = as_datetime(changes["expiryDate"])
    changes["updatedAt"] = datetime.utcnow()
    doc = db()[MEDICINES].find_one_and_update(
        {"_id": to_object_id(medicine_id, "medicine")},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Medicine", medicine_id)
    return present(persist_status(doc))


def delete_medicine(medicine_id: Any) -> None:
    res = db()[MEDICINES].delete_one({"_id": to_object_id(medicine_id, "medicine")})
    if res.deleted_count == 0:
        raise NotFound("Medicine", medicine_id)
    logger.info("Medicine %s deleted", medicine_id)


def adjust_stock(medicine_id: Any, quantity: Any, operation: str = "set") -> Dict[str, Any]:
    if operation not in STOCK_OPERATIONS:
        raise ValidationError.field("operation", f"Operation must be one of {', '.join(STOCK_OPERATIONS)}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError.field("quantity", "Quantity must be a non-negative integer")

    oid = to_object_id(medicine_id, "medicine")
    coll = db()[MEDICINES]
    now = datetime.utcnow()
    doc = None
    if operation == "set":
        doc = coll.find_one_and_update({"_id": oid}, {"$set": {"stock": quantity, "updatedAt": now}},
                                       return_document=ReturnDocument.AFTER)
    elif operation == "add":
        doc = coll.find_one_and_update({"_id": oid}, {"$inc": {"stock": quantity}, "$set": {"updatedAt": now}},
                                       return_document=ReturnDocument.AFTER)
    else:
        # subtract clamps at zero; either guard matches unless the row is gone
        doc = coll.find_one_and_update({"_id": oid, "stock": {"$gte": quantity}},
                                       {"$inc": {"stock": -quantity}, "$set": {"updatedAt": now}},
                                       return_document=ReturnDocument.AFTER)
        if doc is None:
            doc = coll.find_one_and_update({"_id": oid, "stock": {"$lt": quantity}},
                                           {"$set": {"stock": 0, "updatedAt": now}},
                                           return_document=ReturnDocument.AFTER)
    if doc is None:
        raise NotFound("Medicine", medicine_id)
    logger.info("Stock for %s: %s %d -> %d", doc.get("medicineId"), operation, quantity, doc["stock"])
    return present(persist_status(doc))


def take_stock(oid: Any, quantity: int) -> Optional[Dict[str, Any]]:
    """Atomically decrement stock by ``quantity`` only if enough is left."""
    return db()[MEDICINES].find_one_and_update(
        {"_id": oid, "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity}, "$set": {"updatedAt": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


def return_stock(oid: Any, quantity: int) -> Optional[Dict[str, Any]]:
    return db()[MEDICINES].find_one_and_update(
        {"_id": oid},
        {"$inc": {"stock": quantity}, "$set": {"updatedAt": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


def refresh_statuses() -> int:
    """Recompute every status; expiry windows move even when stock does not."""
    changed = 0
    now = datetime.utcnow()
    for doc in db()[MEDICINES].find({}, {"stock": 1, "expiryDate": 1, "minStockLevel": 1, "status": 1}):
        status = status_of(doc, now)
        if doc.get("status") != status:
            db()[MEDICINES].update_one({"_id": doc["_id"], "stock": doc.get("stock")},
                                       {"$set": {"status": status}})
            changed += 1
    logger.info("Refreshed medicine statuses, %d changed", changed)
    return changed


# ---------- read side ----------

def list_medicines(search: Optional[str] = None, status: Optional[str] = None,
                   page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
    query: Dict[str, Any] = {}
    if search:
        query.update(regex_any(search, ("name", "medicineId")))
    if status in STATUSES:
        query["status"] = status
    docs, total = find_page(MEDICINES, query, page, limit)
    return [present(d) for d in docs], total


def low_stock_medicines() -> List[Dict[str, Any]]:
    cursor = db()[MEDICINES].find({"status": {"$in": [LOW_STOCK, OUT_OF_STOCK]}}).sort("stock", ASCENDING)
    return [present(d) for d in cursor]


def expiring_medicines() -> List[Dict[str, Any]]:
    cursor = db()[MEDICINES].find({"status": EXPIRING_SOON}).sort("expiryDate", ASCENDING)
    return [present(d) for d in cursor]


def search_medicines(q: str) -> List[Dict[str, Any]]:
    if not q:
        return []
    query = regex_any(q, ("name", "medicineId"))
    query["status"] = {"$ne": OUT_OF_STOCK}
    fields = {"medicineId": 1, "name": 1, "sellingPrice": 1, "stock": 1, "status": 1, "expiryDate": 1}
    cursor = db()[MEDICINES].find(query, fields).sort("name", ASCENDING).limit(10)
    return [clean(d) for d in cursor]


def medicine_stats() -> Dict[str, Any]:
    coll = db()[MEDICINES]
    value = list(coll.aggregate([
        {"$group": {
            "_id": None,
            "totalValue": {"$sum": {"$multiply": ["$sellingPrice", "$stock"]}},
            "totalStock": {"$sum": "$stock"},
        }},
    ]))
    totals = value[0] if value else {}
    return {
        "total": coll.count_documents({}),
        "inStock": coll.count_documents({"status": IN_STOCK}),
        "lowStock": coll.count_documents({"status": LOW_STOCK}),
        "outOfStock": coll.count_documents({"status": OUT_OF_STOCK}),
        "expiringSoon": coll.count_documents({"status": EXPIRING_SOON}),
        "inventoryValue": totals.get("totalValue", 0),
        "totalStock": totals.get("totalStock", 0),
    }
