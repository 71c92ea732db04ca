from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

import analytics
from auth import require_user
from responses import ok

router = APIRouter(prefix="/analytics", tags=["analytics"], dependencies=[Depends(require_user)])


@router.get("/summary")
def summary():
    return ok(analytics.summary(), "Dashboard summary retrieved")


@router.get("/daily-earnings")
def daily_earnings(days: int = Query(7, ge=1, le=90)):
    return ok(analytics.daily_earnings(days), "Daily earnings data retrieved")


@router.get("/monthly-growth")
def monthly_growth(months: int = Query(12, ge=1, le=36)):
    return ok(analytics.monthly_growth(months), "Monthly growth data retrieved")


@router.get("/revenue-split")
def revenue_split(startDate: Optional[datetime] = None, endDate: Optional[datetime] = None):
    return ok(analytics.revenue_split(startDate, endDate), "Revenue breakdown retrieved")


@router.get("/recent-patients")
def recent_patients(limit: int = Query(5, ge=1, le=50)):
    return ok(analytics.recent_patients(limit), "Recent patients retrieved")


@router.get("/top-services")
def top_services(limit: int = Query(5, ge=1, le=50), startDate: Optional[datetime] = None,
                 endDate: Optional[datetime] = None):
    return ok(analytics.top_services(limit, startDate, endDate), "Top services retrieved")


@router.get("/top-medicines")
def top_medicines(limit: int = Query(5, ge=1, le=50), startDate: Optional[datetime] = None,
                  endDate: Optional[datetime] = None):
    return ok(analytics.top_medicines(limit, startDate, endDate), "Top medicines retrieved")


@router.get("/performance")
def performance():
    return ok(analytics.performance(), "Performance metrics retrieved")
