from datetime import date, datetime, time, timedelta
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from ..config import settings
from ..deps import get_db, require_api_key
from .. import schemas
from ..services import compliance, productivity
from ..services.tasks import load_task_records

router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
    dependencies=[Depends(require_api_key)],
)

@router.get("/missed")
def missed_tasks(db: Session = Depends(get_db)):
    return compliance.missed_tasks_analysis(load_task_records(db), datetime.utcnow(), settings.never_started_days)

@router.get("/lag")
def lag(period: schemas.Period = Query("month"), db: Session = Depends(get_db)):
    return compliance.lag_indicators(load_task_records(db), period, datetime.utcnow())

@router.get("/mastery")
def mastery(period: schemas.Period = Query("month"), db: Session = Depends(get_db)):
    return compliance.task_mastery_stats(load_task_records(db), period, datetime.utcnow())

@router.get("/productivity")
def productivity_metrics(
    start: date | None = Query(None, description="YYYY-MM-DD, defaults to 30 days ago"),
    end: date | None = Query(None, description="YYYY-MM-DD, defaults to today"),
    db: Session = Depends(get_db),
):
    now = datetime.utcnow()
    start_dt = datetime.combine(start, time.min) if start else now - timedelta(days=30)
    end_dt = datetime.combine(end, time.max) if end else now
    if start_dt > end_dt:
        raise HTTPException(422, "start must not be after end")
    return productivity.productivity_metrics(load_task_records(db), start_dt, end_dt)

@router.get("/insights")
def insights(db: Session = Depends(get_db)):
    return productivity.productivity_insights(load_task_records(db), datetime.utcnow().date())

@router.get("/daily")
def daily_productivity(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)):
    return productivity.daily_productivity_data(load_task_records(db), datetime.utcnow().date(), days)

def _category_filters(
    category: list[str] | None = Query(None),
    subcategory: list[str] | None = Query(None),
    activity_type: list[str] | None = Query(None),
) -> dict:
    return {"categories": category, "subcategories": subcategory, "activity_types": activity_type}

@router.get("/categories")
def category_performance(
    period: schemas.Period = Query("month"),
    filters: dict = Depends(_category_filters),
    db: Session = Depends(get_db),
):
    return productivity.category_performance(load_task_records(db), period, datetime.utcnow(), **filters)

@router.get("/categories/stats")
def category_statistics(
    period: schemas.Period = Query("month"),
    filters: dict = Depends(_category_filters),
    db: Session = Depends(get_db),
):
    return productivity.category_statistics(load_task_records(db), period, datetime.utcnow(), **filters)
