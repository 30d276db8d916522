from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from typing import Iterable

from sqlalchemy.orm import Session

from .. import models, schemas

TARGET_TYPES = ("tasks_completed", "time_spent", "category_focus")


class GoalError(Exception):
    pass


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def create_goal(db: Session, payload: schemas.GoalCreate) -> models.Goal:
    if payload.target_value <= 0:
        raise GoalError("target_value must be greater than 0")
    if payload.end_date < payload.start_date:
        raise GoalError("end_date must not be before start_date")
    if payload.target_type == "category_focus" and not payload.target_category:
        raise GoalError("category_focus goals need a target_category")
    g = models.Goal(**payload.model_dump())
    db.add(g); db.commit(); db.refresh(g)
    return g


def list_goals(db: Session) -> list[models.Goal]:
    return db.query(models.Goal).order_by(models.Goal.created_at.desc()).all()


def goal_progress(goal, tasks: Iterable, now: datetime) -> dict:
    """
    Progress of ``goal`` over the task snapshot. The goal window covers whole
    days: start_date 00:00 up to the end of end_date.
    """
    window_start = _day_start(goal.start_date)
    window_end = _day_start(goal.end_date + timedelta(days=1))

    relevant = [
        t for t in tasks
        if t.reference_time is not None and window_start <= t.reference_time < window_end
    ]
    done = [t for t in relevant if t.done]

    if goal.target_type == "tasks_completed":
        current = len(done)
    elif goal.target_type == "time_spent":
        current = sum(t.minutes_spent for t in done)
    elif goal.target_type == "category_focus":
        current = sum(1 for t in done if goal.target_category and goal.target_category in (t.category, t.main_category))
    else:
        current = 0

    target = goal.target_value
    is_completed = current >= target
    days_remaining = max(0, math.ceil((window_end - now).total_seconds() / 86400))
    total_days = (goal.end_date - goal.start_date).days + 1

    return {
        "goal_id": goal.id,
        "current_progress": current,
        "target_value": target,
        "progress_percentage": min(100, round(100 * current / target)) if target > 0 else 0,
        "is_completed": is_completed,
        "is_overdue": now >= window_end and not is_completed,
        "days_remaining": days_remaining,
        "days_elapsed": max(0, total_days - days_remaining),
        "total_days": total_days,
    }
