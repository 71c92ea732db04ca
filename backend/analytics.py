from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from pymongo import DESCENDING

from database import BILLS, MEDICINES, PATIENTS, SERVICES, clean, db
from inventory import EXPIRING_SOON, LOW_STOCK, OUT_OF_STOCK
from patients import day_bounds, month_start


def _range(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
    if not (start or end):
        return {}
    window: Dict[str, Any] = {}
    if start:
        window["$gte"] = start
    if end:
        window["$lte"] = end
    return {"createdAt": window}


def _revenue(query: Dict[str, Any]) -> float:
    result = list(db()[BILLS].aggregate([
        {"$match": query},
        {"$group": {"_id": None, "total": {"$sum": "$totalAmount"}}},
    ]))
    return round(result[0]["total"], 2) if result else 0


def percent_share(part: float, total: float) -> int:
    # floored so the shares of a total never add up past 100
    if total <= 0:
        return 0
    return int(part * 100 // total)


def growth_percent(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def summary() -> Dict[str, Any]:
    start, end = day_bounds()
    return {
        "patientsToday": db()[PATIENTS].count_documents({"lastVisit": {"$gte": start, "$lt": end}}),
        "earningsToday": _revenue({"createdAt": {"$gte": start, "$lt": end}}),
        "totalPatients": db()[PATIENTS].count_documents({}),
        "totalMedicines": db()[MEDICINES].count_documents({}),
        "totalServices": db()[SERVICES].count_documents({"isActive": True}),
        "lowStockCount": db()[MEDICINES].count_documents({"status": {"$in": [LOW_STOCK, OUT_OF_STOCK]}}),
        "expiringSoonCount": db()[MEDICINES].count_documents({"status": EXPIRING_SOON}),
    }


def daily_earnings(days: int = 7) -> List[Dict[str, Any]]:
    today, _ = day_bounds()
    rows = []
    for i in range(days - 1, -1, -1):
        start = today - timedelta(days=i)
        end = start + timedelta(days=1)
        rows.append({
            "day": start.strftime("%a"),
            "date": start.date().isoformat(),
            "earnings": _revenue({"createdAt": {"$gte": start, "$lt": end}}),
            "patients": db()[PATIENTS].count_documents({"lastVisit": {"$gte": start, "$lt": end}}),
        })
    return rows


def monthly_growth(months: int = 12) -> List[Dict[str, Any]]:
    first = month_start()
    rows = []
    for i in range(months - 1, -1, -1):
        start = first - relativedelta(months=i)
        end = start + relativedelta(months=1)
        window = {"$gte": start, "$lt": end}
        rows.append({
            "month": start.strftime("%b"),
            "year": start.year,
            "revenue": _revenue({"createdAt": window}),
            "patients": db()[PATIENTS].count_documents({"createdAt": window}),
        })
    return rows


def revenue_split(start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    result = list(db()[BILLS].aggregate([
        {"$match": _range(start, end)},
        {"$group": {
            "_id": None,
            "consultation": {"$sum": "$consultationFee"},
            "medicines": {"$sum": "$medicinesTotal"},
            "services": {"$sum": "$servicesTotal"},
            "total": {"$sum": "$totalAmount"},
        }},
    ]))
    totals = result[0] if result else {"consultation": 0, "medicines": 0, "services": 0, "total": 0}
    total = totals["total"]
    breakdown = [
        {"name": label, "value": percent_share(totals[key], total), "amount": round(totals[key], 2)}
        for label, key in (("Consultation", "consultation"), ("Medicines", "medicines"), ("Services", "services"))
    ]
    return {"breakdown": breakdown, "total": round(total, 2)}


def recent_patients(limit: int = 5) -> List[Dict[str, Any]]:
    fields = {"patientId": 1, "name": 1, "phone": 1, "age": 1, "gender": 1, "lastVisit": 1, "status": 1}
    cursor = db()[PATIENTS].find({}, fields).sort([("lastVisit", DESCENDING), ("createdAt", DESCENDING)]).limit(limit)
    return clean(list(cursor))


def _top_lines(array: str, count_expr: Any, revenue_expr: str, count_name: str, limit: int,
               start: Optional[datetime], end: Optional[datetime]) -> List[Dict[str, Any]]:
    pipeline = [
        {"$match": _range(start, end)},
        {"$unwind": f"${array}"},
        {"$group": {"_id": f"${array}.name", "count": {"$sum": count_expr}, "revenue": {"$sum": revenue_expr}}},
        {"$sort": {"count": -1, "revenue": -1}},
        {"$limit": limit},
    ]
    return [
        {"name": row["_id"], count_name: row["count"], "revenue": round(row["revenue"], 2)}
        for row in db()[BILLS].aggregate(pipeline)
    ]


def top_services(limit: int = 5, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Dict[str, Any]]:
    return _top_lines("services", 1, "$services.price", "count", limit, start, end)


def top_medicines(limit: int = 5, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Dict[str, Any]]:
    return _top_lines("medicines", "$medicines.quantity", "$medicines.total", "quantitySold", limit, start, end)


def performance() -> Dict[str, Any]:
    bills = db()[BILLS]
    total_revenue = _revenue({})
    total_bills = bills.count_documents({})
    total_patients = db()[PATIENTS].count_documents({})

    this_month = month_start()
    last_month = this_month - relativedelta(months=1)
    this_month_revenue = _revenue({"createdAt": {"$gte": this_month}})
    last_month_revenue = _revenue({"createdAt": {"$gte": last_month, "$lt": this_month}})

    today, tomorrow = day_bounds()
    yesterday = today - timedelta(days=1)
    today_revenue = _revenue({"createdAt": {"$gte": today, "$lt": tomorrow}})
    yesterday_revenue = _revenue({"createdAt": {"$gte": yesterday, "$lt": today}})

    return {
        "totalRevenue": total_revenue,
        "totalPatients": total_patients,
        "avgRevenuePerPatient": round(total_revenue / total_patients) if total_patients else 0,
        "avgBillAmount": round(total_revenue / total_bills) if total_bills else 0,
        "thisMonthRevenue": this_month_revenue,
        "lastMonthRevenue": last_month_revenue,
        "growthPercentage": growth_percent(this_month_revenue, last_month_revenue),
        "todayRevenue": today_revenue,
        "yesterdayRevenue": yesterday_revenue,
        "dayOverDayChange": round(today_revenue - yesterday_revenue, 2),
    }
