"""
Billing ledger: invoices (``bill`` collection) and the stock movements tied
to them.

Creation resolves and validates every line before any stock is touched, then
takes stock with conditional atomic decrements. If a decrement guard fails
(another invoice got there first) or the invoice cannot be inserted, the
decrements already applied are given back before the error propagates.
Deletion removes the invoice with ``find_one_and_delete`` so exactly one
caller restores its stock.
"""
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from config import settings
from database import BILLS, MEDICINES, clean, db, find_page, get_document, regex_any, to_object_id
from errors import InsufficientStock, NotFound, ValidationError
from identifiers import BILL_SEQ, insert_with_identifier
from inventory import persist_status, return_stock, take_stock
from patients import day_bounds, load_patient, month_start, touch_last_visit
from catalog import load_service

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ("paid", "pending", "partial")
PAYMENT_METHODS = ("cash", "upi", "")
NOTES_MAX = 500


def _amount(value: Any) -> float:
    return float(value or 0)


def line_total(price: float, quantity: int) -> float:
    return price * quantity


def compute_totals(consultation_fee: float, medicine_lines: Iterable[Dict[str, Any]],
                   service_lines: Iterable[Dict[str, Any]]) -> Dict[str, float]:
    """Derived bill amounts. ``totalAmount`` is exactly the sum of the parts,
    built from the unrounded line values."""
    fee = _amount(consultation_fee)
    medicines_total = sum((line["total"] for line in medicine_lines), 0.0)
    services_total = sum((line["price"] for line in service_lines), 0.0)
    return {
        "consultationFee": fee,
        "medicinesTotal": medicines_total,
        "servicesTotal": services_total,
        "totalAmount": fee + medicines_total + services_total,
    }


def _check_payment(payment_status: Optional[str], payment_method: Optional[str], notes: Optional[str]) -> None:
    errors = []
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        errors.append({"field": "paymentStatus", "message": "Invalid payment status"})
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        errors.append({"field": "paymentMethod", "message": "Invalid payment method"})
    if notes is not None and len(notes) > NOTES_MAX:
        errors.append({"field": "notes", "message": f"Notes cannot exceed {NOTES_MAX} characters"})
    if errors:
        raise ValidationError("Validation Error", errors)


def _ref(item: Dict[str, Any], key: str) -> Any:
    return item.get(key) or item.get("id")


def _resolve_medicines(requests: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], "OrderedDict[Any, int]"]:
    lines = []
    wanted: "OrderedDict[Any, int]" = OrderedDict()
    found: Dict[Any, Dict[str, Any]] = {}
    for idx, item in enumerate(requests):
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError.field(f"medicines[{idx}].quantity", "Quantity must be at least 1")
        ref = _ref(item, "medicine")
        medicine = get_document(MEDICINES, ref, "medicine") if ref else None
        if medicine is None:
            raise NotFound("Medicine", item.get("name") or ref)
        oid = medicine["_id"]
        found[oid] = medicine
        wanted[oid] = wanted.get(oid, 0) + quantity
        price = _amount(medicine.get("sellingPrice"))
        lines.append({
            "medicine": oid,
            "name": medicine.get("name"),
            "price": price,
            "quantity": quantity,
            "total": line_total(price, quantity),
        })
    # the same medicine may appear on several lines
    for oid, quantity in wanted.items():
        stock = int(found[oid].get("stock") or 0)
        if stock < quantity:
            raise InsufficientStock(found[oid].get("name"), stock, quantity)
    return lines, wanted


def _resolve_services(requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    lines = []
    for item in requests:
        ref = _ref(item, "service")
        if not ref:
            raise NotFound("Service", item.get("name"))
        service = load_service(ref, active_only=True)
        lines.append({"service": service["_id"], "name": service.get("name"), "price": _amount(service.get("price"))})
    return lines


def _give_back(taken: List[Tuple[Any, int]]) -> None:
    for oid, quantity in taken:
        doc = return_stock(oid, quantity)
        if doc is not None:
            persist_status(doc)
    if taken:
        logger.warning("Returned stock for %d medicine(s) after a failed bill", len(taken))


def _take_all(wanted: "OrderedDict[Any, int]") -> List[Tuple[Any, int]]:
    taken: List[Tuple[Any, int]] = []
    updated = []
    for oid, quantity in wanted.items():
        doc = take_stock(oid, quantity)
        if doc is None:
            _give_back(taken)
            current = db()[MEDICINES].find_one({"_id": oid}, {"name": 1, "stock": 1})
            if current is None:
                raise NotFound("Medicine", str(oid))
            raise InsufficientStock(current.get("name"), int(current.get("stock") or 0), quantity)
        taken.append((oid, quantity))
        updated.append(doc)
    for doc in updated:
        persist_status(doc)
    return taken


def present_bill(doc: Dict[str, Any]) -> Dict[str, Any]:
    return clean(doc)


def create_invoice(
    patient_id: Any,
    medicines: Optional[List[Dict[str, Any]]] = None,
    services: Optional[List[Dict[str, Any]]] = None,
    consultation_fee: Optional[float] = None,
    payment_status: Optional[str] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Any = None,
) -> Dict[str, Any]:
    _check_payment(payment_status, payment_method, notes)
    fee = settings.DEFAULT_CONSULTATION_FEE if consultation_fee is None else consultation_fee
    if float(fee) < 0:
        raise ValidationError.field("consultationFee", "Consultation fee cannot be negative")

    patient = load_patient(patient_id)
    medicine_lines, wanted = _resolve_medicines(list(medicines or []))
    service_lines = _resolve_services(list(services or []))
    totals = compute_totals(fee, medicine_lines, service_lines)

    taken = _take_all(wanted)
    now = datetime.utcnow()
    doc = {
        "patient": patient["_id"],
        "patientName": patient.get("name"),
        "patientPhone": patient.get("phone"),
        "medicines": medicine_lines,
        "services": service_lines,
        **totals,
        "paymentStatus": payment_status or "paid",
        "paymentMethod": "cash" if payment_method is None else payment_method,
        "notes": notes,
        "createdBy": created_by,
        "createdAt": now,
    }
    try:
        saved = insert_with_identifier(BILL_SEQ, doc)
    except Exception:
        _give_back(taken)
        raise

    touch_last_visit(patient["_id"], now)
    logger.info("Bill %s created for %s: total %.2f (%d medicine line(s), %d service line(s))",
                saved["billId"], patient.get("patientId"), saved["totalAmount"],
                len(medicine_lines), len(service_lines))
    return present_bill(saved)


def load_invoice(bill_id: Any) -> Dict[str, Any]:
    doc = get_document(BILLS, bill_id, "bill")
    if doc is None:
        raise NotFound("Bill", bill_id)
    return doc


def get_invoice(bill_id: Any) -> Dict[str, Any]:
    return present_bill(load_invoice(bill_id))


def update_invoice_payment(bill_id: Any, payment_status: Optional[str] = None,
                           payment_method: Optional[str] = None, notes: Optional[str] = None) -> Dict[str, Any]:
    """Change payment fields only; line items stay as billed."""
    _check_payment(payment_status, payment_method, notes)
    current = load_invoice(bill_id)
    changes: Dict[str, Any] = compute_totals(
        current.get("consultationFee"), current.get("medicines") or [], current.get("services") or [])
    if payment_status is not None:
        changes["paymentStatus"] = payment_status
    if payment_method is not None:
        changes["paymentMethod"] = payment_method
    if notes is not None:
        changes["notes"] = notes
    changes["updatedAt"] = datetime.utcnow()
    doc = db()[BILLS].find_one_and_update(
        {"_id": current["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Bill", bill_id)
    logger.info("Bill %s payment updated: %s/%s", doc["billId"], doc.get("paymentStatus"), doc.get("paymentMethod"))
    return present_bill(doc)


def delete_invoice(bill_id: Any) -> None:
    doc = db()[BILLS].find_one_and_delete({"_id": to_object_id(bill_id, "bill")})
    if doc is None:
        raise NotFound("Bill", bill_id)
    restored = 0
    lines = doc.get("medicines") or []
    for idx, line in enumerate(lines):
        try:
            medicine = return_stock(line["medicine"], int(line["quantity"]))
        except PyMongoError:
            # the bill is already gone; whatever is left must be returned by hand
            for pending in lines[idx:]:
                logger.error("Bill %s deleted but stock not restored: medicine %s (%s) quantity %s",
                             doc["billId"], pending.get("name"), pending.get("medicine"), pending.get("quantity"))
            raise
        if medicine is None:
            logger.warning("Bill %s: medicine %s no longer exists, stock not restored", doc["billId"], line.get("name"))
            continue
        persist_status(medicine)
        restored += 1
    logger.info("Bill %s deleted, stock restored on %d line(s)", doc["billId"], restored)


# ---------- read side ----------

def list_invoices(search: Optional[str] = None, start: Optional[datetime] = None, end: Optional[datetime] = None,
                  payment_status: Optional[str] = None, page: int = 1,
                  limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
    query: Dict[str, Any] = {}
    if search:
        query.update(regex_any(search, ("billId", "patientName")))
    if start or end:
        query["createdAt"] = {}
        if start:
            query["createdAt"]["$gte"] = start
        if end:
            query["createdAt"]["$lte"] = end
    if payment_status in PAYMENT_STATUSES:
        query["paymentStatus"] = payment_status
    docs, total = find_page(BILLS, query, page, limit)
    return [present_bill(d) for d in docs], total


def invoices_for_patient(patient_id: Any) -> List[Dict[str, Any]]:
    cursor = db()[BILLS].find({"patient": to_object_id(patient_id, "patient")}).sort("createdAt", DESCENDING)
    return [present_bill(d) for d in cursor]


def _earnings(bills: List[Dict[str, Any]]) -> float:
    return round(sum(b.get("totalAmount") or 0 for b in bills), 2)


def todays_invoices() -> Dict[str, Any]:
    start, end = day_bounds()
    bills = list(db()[BILLS].find({"createdAt": {"$gte": start, "$lt": end}}).sort("createdAt", DESCENDING))
    return {"bills": [present_bill(b) for b in bills], "count": len(bills), "totalEarnings": _earnings(bills)}


def invoice_stats() -> Dict[str, Any]:
    coll = db()[BILLS]
    start, end = day_bounds()
    today = list(coll.find({"createdAt": {"$gte": start, "$lt": end}}, {"totalAmount": 1}))
    month = list(coll.find({"createdAt": {"$gte": month_start()}}, {"totalAmount": 1}))
    overall = list(coll.aggregate([{"$group": {"_id": None, "total": {"$sum": "$totalAmount"}}}]))
    return {
        "today": {"count": len(today), "earnings": _earnings(today)},
        "thisMonth": {"count": len(month), "earnings": _earnings(month)},
        "total": {"count": coll.count_documents({}), "earnings": round(overall[0]["total"] if overall else 0, 2)},
        "paymentStatus": {s: coll.count_documents({"paymentStatus": s}) for s in PAYMENT_STATUSES},
    }
