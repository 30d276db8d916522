from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy.orm import Session

from .. import models, schemas
from .ledger import LedgerError, OccurrenceLedger
from .recurrence import definition_from_task, next_occurrence, previous_occurrence

logger = logging.getLogger(__name__)


def load_task_records(db: Session) -> list[schemas.TaskRecord]:
    """Snapshot of the task store with series counters surfaced on each record."""
    states = {s.recurring_root_id: s for s in db.query(models.SeriesState).all()}
    records = []
    for row in db.query(models.Task).all():
        record = schemas.TaskRecord.model_validate(row)
        state = states.get(record.root_id) if record.is_recurring else None
        if state is not None:
            record = record.model_copy(update={
                "current_streak": state.current_streak,
                "longest_streak": state.longest_streak,
                "total_completed": state.total_completed,
                "total_missed": state.total_missed,
                "last_completed_date": state.last_completed_date,
            })
        records.append(record)
    return records


def _record_series_completion(db: Session, task: models.Task, payload: schemas.TaskComplete, on: date):
    """Ledger side of a recurring completion; returns (definition, result) or None."""
    root_id = task.recurring_root_id or task.id
    root = db.get(models.Task, root_id) or task
    defn = definition_from_task(root)
    if defn is None:
        logger.warning("[tasks] recurring task %s has no start date, deadline or creation time", task.id)
        return None
    # reject before the series row is touched
    if previous_occurrence(defn, on) is None:
        raise LedgerError(f"{on.isoformat()} is before the start of series {root_id!r}")

    ledger = OccurrenceLedger(db)
    ledger.register_series(root_id, defn, root.text)
    result = ledger.record_completion(
        root_id,
        on,
        count=payload.count,
        time_minutes=payload.actual_minutes,
        distance=payload.distance,
        distance_unit=payload.distance_unit,
    )
    return defn, result


def complete_task(db: Session, task: models.Task, payload: schemas.TaskComplete, now: datetime) -> dict:
    """
    Mark a task done. For a recurring task the completion is recorded in the
    ledger first and the next instance of the series is created; when the
    ledger rejects the completion the task is left untouched.
    """
    on: date = payload.completed_on or now.date()
    series = _record_series_completion(db, task, payload, on) if task.is_recurring else None

    task.done = True
    task.completed_at = now
    if payload.actual_minutes is not None:
        task.actual_minutes = (task.actual_minutes or 0) + payload.actual_minutes
    if series is None:
        db.commit()
        return {"ok": True, "task_id": task.id}

    defn, result = series
    nxt = models.Task(
        text=task.text,
        done=False,
        deadline=next_occurrence(defn, result["date"]),
        priority=task.priority,
        category=task.category,
        main_category=task.main_category,
        subcategory=task.subcategory,
        activity_type=task.activity_type,
        estimated_minutes=task.estimated_minutes,
        is_recurring=True,
        recurring_pattern=task.recurring_pattern,
        recurring_interval=task.recurring_interval,
        recurring_days=task.recurring_days,
        recurring_start_date=defn.anchor_date,
        recurring_root_id=result["recurring_root_id"],
    )
    # task and next instance land in one commit
    db.add(nxt); db.commit()
    return {"ok": True, "task_id": task.id, "next_task_id": nxt.id, "series": result}
