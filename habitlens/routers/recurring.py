from datetime import date as ddate, datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from ..config import settings
from ..deps import get_ledger, require_api_key
from .. import models, schemas
from ..services.ledger import LedgerError, OccurrenceLedger

router = APIRouter(prefix="/recurring", tags=["recurring"], dependencies=[Depends(require_api_key)])

# ---------- helpers ----------
def today_utc() -> ddate:
    return datetime.utcnow().date()

def _series_or_404(db: Session, root_id: str) -> models.SeriesState:
    s = db.get(models.SeriesState, root_id)
    if not s:
        raise HTTPException(404, "Recurring series not found")
    return s

# ---------- endpoints ----------
@router.post("/check-missed")
def check_missed(
    as_of: ddate | None = Query(None, description="YYYY-MM-DD, defaults to today (excluded from the check)"),
    ledger: OccurrenceLedger = Depends(get_ledger),
):
    # callers throttle this themselves; every call is safe to repeat
    return ledger.check_all_missed_recurring(as_of or today_utc())

@router.get("/stats")
def all_stats(ledger: OccurrenceLedger = Depends(get_ledger)):
    return ledger.all_recurring_stats(today_utc(), settings.history_days)

@router.post("/{root_id}/complete")
def record_completion(
    root_id: str,
    payload: schemas.RecurringCompletion,
    ledger: OccurrenceLedger = Depends(get_ledger),
):
    _series_or_404(ledger.db, root_id)
    try:
        return ledger.record_completion(
            root_id,
            payload.date,
            count=payload.count,
            time_minutes=payload.time_minutes,
            distance=payload.distance,
            distance_unit=payload.distance_unit,
        )
    except LedgerError as e:
        raise HTTPException(422, str(e))

@router.get("/{root_id}/history")
def history(root_id: str, ledger: OccurrenceLedger = Depends(get_ledger)):
    s = _series_or_404(ledger.db, root_id)
    return {
        "recurring_root_id": root_id,
        "current_streak": s.current_streak,
        "longest_streak": s.longest_streak,
        "last_checked_date": s.last_checked_date,
        "history": ledger.history(root_id),
    }

@router.get("/missed")
def all_missed_logs(
    start: ddate | None = Query(None, description="YYYY-MM-DD, inclusive"),
    end: ddate | None = Query(None, description="YYYY-MM-DD, inclusive"),
    ledger: OccurrenceLedger = Depends(get_ledger),
):
    return ledger.all_missed_logs(start, end)

@router.get("/{root_id}/missed")
def missed_logs(
    root_id: str,
    start: ddate | None = Query(None, description="YYYY-MM-DD, inclusive"),
    end: ddate | None = Query(None, description="YYYY-MM-DD, inclusive"),
    limit: int | None = Query(None, ge=1, le=500),
    ledger: OccurrenceLedger = Depends(get_ledger),
):
    _series_or_404(ledger.db, root_id)
    return ledger.missed_logs(root_id, start, end, limit)
