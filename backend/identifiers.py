"""
Sequential, human-readable identifiers (DOC001, MED001, SER001, BILL001).

Each prefix owns a counter document in the ``counters`` collection that is
bumped with an atomic ``$inc``. A missing counter is seeded from the numeric
maximum already present in the entity collection, so existing data keeps its
sequence and ``BILL1000`` correctly follows ``BILL999``.
"""
import logging
import re
from typing import Any, Dict, NamedTuple, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from config import settings
from database import BILLS, COUNTERS, MEDICINES, PATIENTS, SERVICES, create_document, db
from errors import IdentifierConflict, ValidationError

logger = logging.getLogger(__name__)


class IdSequence(NamedTuple):
    collection: str
    field: str
    prefix: str


PATIENT_SEQ = IdSequence(PATIENTS, "patientId", "DOC")
MEDICINE_SEQ = IdSequence(MEDICINES, "medicineId", "MED")
SERVICE_SEQ = IdSequence(SERVICES, "serviceId", "SER")
BILL_SEQ = IdSequence(BILLS, "billId", "BILL")

SEQUENCES: Dict[str, IdSequence] = {s.prefix: s for s in (PATIENT_SEQ, MEDICINE_SEQ, SERVICE_SEQ, BILL_SEQ)}


def _sequence(prefix: str) -> IdSequence:
    seq = SEQUENCES.get((prefix or "").upper())
    if seq is None:
        raise ValidationError.field("prefix", f"Unknown identifier prefix: {prefix}")
    return seq


def format_identifier(prefix: str, number: int, width: Optional[int] = None) -> str:
    width = width or settings.ID_WIDTH
    return f"{prefix}{number:0{width}d}"


def parse_identifier(prefix: str, code: Any) -> Optional[int]:
    m = re.fullmatch(re.escape(prefix) + r"(\d+)", str(code or ""))
    return int(m.group(1)) if m else None


def highest_issued(seq: IdSequence) -> int:
    """Numeric maximum of the identifiers stored for ``seq`` (0 when none)."""
    cursor = db()[seq.collection].find(
        {seq.field: {"$regex": "^" + re.escape(seq.prefix) + r"\d+$"}},
        {seq.field: 1, "_id": 0},
    )
    highest = 0
    for doc in cursor:
        n = parse_identifier(seq.prefix, doc.get(seq.field))
        if n is not None and n > highest:
            highest = n
    return highest


def _seed_counter(seq: IdSequence) -> None:
    counters = db()[COUNTERS]
    highest = highest_issued(seq)
    try:
        counters.update_one({"_id": seq.prefix}, {"$max": {"seq": highest}}, upsert=True)
    except DuplicateKeyError:
        # a concurrent seeder created the document first
        counters.update_one({"_id": seq.prefix}, {"$max": {"seq": highest}})


def next_identifier(prefix: str) -> str:
    seq = _sequence(prefix)
    counters = db()[COUNTERS]
    if counters.find_one({"_id": seq.prefix}) is None:
        _seed_counter(seq)
    doc = counters.find_one_and_update(
        {"_id": seq.prefix},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return format_identifier(seq.prefix, int(doc["seq"]))


def _is_identifier_clash(exc: DuplicateKeyError, field: str) -> bool:
    key = (exc.details or {}).get("keyPattern") or {}
    return not key or field in key


def insert_with_identifier(seq: IdSequence, doc: Dict[str, Any], attempts: Optional[int] = None) -> Dict[str, Any]:
    """Insert ``doc`` under a freshly issued identifier.

    A uniqueness violation on the identifier re-seeds the counter from the
    collection and tries again; after ``attempts`` clashes IdentifierConflict
    is raised and nothing has been written.
    """
    attempts = attempts or settings.ID_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        doc.pop("_id", None)
        doc[seq.field] = next_identifier(seq.prefix)
        try:
            return create_document(seq.collection, doc)
        except DuplicateKeyError as e:
            if not _is_identifier_clash(e, seq.field):
                raise
            logger.warning("Identifier %s already taken (attempt %d/%d)", doc[seq.field], attempt, attempts)
            _seed_counter(seq)
    raise IdentifierConflict(seq.prefix, attempts)
