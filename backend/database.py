import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple
from datetime import datetime

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import settings
from errors import StorageUnavailable, ValidationError

logger = logging.getLogger(__name__)

PATIENTS = "patient"
MEDICINES = "medicine"
SERVICES = "service"
BILLS = "bill"
USERS = "user"
COUNTERS = "counters"

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def init_db(client: Optional[MongoClient] = None, name: Optional[str] = None) -> Database:
    """Bind the module to a client (a real one unless a test passes its own)."""
    global _client, _db
    if client is None:
        client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=settings.MONGO_TIMEOUT_MS)
    _client = client
    _db = client[name or settings.DATABASE_NAME]
    ensure_indexes(_db)
    logger.info("Using database %s", _db.name)
    return _db


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def db() -> Database:
    if _db is None:
        try:
            init_db()
        except PyMongoError as e:
            logger.exception("Database initialisation failed")
            raise StorageUnavailable(f"Database not initialized: {e}")
    return _db


def ensure_indexes(database: Database) -> None:
    # identifier uniqueness is what turns a racing insert into a DuplicateKeyError
    database[PATIENTS].create_index([("patientId", ASCENDING)], unique=True, name="uniq_patient_id")
    database[MEDICINES].create_index([("medicineId", ASCENDING)], unique=True, name="uniq_medicine_id")
    database[SERVICES].create_index([("serviceId", ASCENDING)], unique=True, name="uniq_service_id")
    database[BILLS].create_index([("billId", ASCENDING)], unique=True, name="uniq_bill_id")
    database[USERS].create_index([("email", ASCENDING)], unique=True, name="uniq_email")

    database[PATIENTS].create_index([("phone", ASCENDING)])
    database[PATIENTS].create_index([("lastVisit", DESCENDING)])
    database[PATIENTS].create_index([("status", ASCENDING)])
    database[MEDICINES].create_index([("status", ASCENDING)])
    database[MEDICINES].create_index([("expiryDate", ASCENDING)])
    database[SERVICES].create_index([("isActive", ASCENDING)])
    database[BILLS].create_index([("patient", ASCENDING)])
    database[BILLS].create_index([("createdAt", DESCENDING)])
    database[BILLS].create_index([("paymentStatus", ASCENDING)])


def to_object_id(value: Any, field: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError.field(field, f"Invalid {field} format")


def clean(value: Any) -> Any:
    """Stringify ObjectIds anywhere in a document so it can go out as JSON."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: clean(v) for k, v in value.items()}
    if isinstance(value, list):
        return [clean(v) for v in value]
    return value


def create_document(collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.utcnow()
    if "createdAt" not in data:
        data["createdAt"] = now
    data["updatedAt"] = now
    res = db()[collection_name].insert_one(data)
    data["_id"] = res.inserted_id
    return data


def get_document(collection_name: str, doc_id: Any, field: str = "id") -> Optional[Dict[str, Any]]:
    return db()[collection_name].find_one({"_id": to_object_id(doc_id, field)})


def find_page(
    collection_name: str,
    filter_dict: Dict[str, Any],
    page: int = 1,
    limit: int = 10,
    sort: Sequence[Tuple[str, int]] = (("createdAt", DESCENDING),),
) -> Tuple[List[Dict[str, Any]], int]:
    page = max(1, int(page))
    limit = max(1, int(limit))
    coll = db()[collection_name]
    total = coll.count_documents(filter_dict)
    docs = list(coll.find(filter_dict).sort(list(sort)).skip((page - 1) * limit).limit(limit))
    return docs, total


def regex_any(term: str, fields: Sequence[str]) -> Dict[str, Any]:
    pattern = re.escape(term)
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}
