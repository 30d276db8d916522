"""
Compliance scoring: completion rates, mastery, lag and trend.

All functions are pure over a list of ``TaskRecord`` snapshots and an
explicit ``now``; none of them read the clock or the database.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable

PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90}
PRIORITIES = ("high", "medium", "low")
TREND_THRESHOLD = 5

MASTERY_LABELS = ((85, "Expert"), (65, "Proficient"), (40, "Developing"))
LAG_LABELS = ((30, "On Track"), (50, "Slight Lag"), (75, "Behind"))


def _clamp(value: float, lo: float = 0, hi: float = 100) -> float:
    return max(lo, min(hi, value))


def period_days(period: str | None) -> int:
    return PERIOD_DAYS.get(period or "month", 30)


# ---------- formulas ----------

def completion_rate(completed: int, missed: int) -> int:
    total = (completed or 0) + (missed or 0)
    if total <= 0:
        return 0
    return round(100 * (completed or 0) / total)


def mastery_score(
    rate: float,
    active_days: int,
    elapsed_days: int,
    high_priority_completed: int,
    total_completed: int,
) -> int:
    consistency = _clamp(active_days / elapsed_days * 100) if elapsed_days > 0 else 0
    focus = high_priority_completed / total_completed * 100 if total_completed > 0 else 0
    return round(_clamp(0.5 * rate + 0.3 * consistency + 0.2 * focus))


def mastery_label(score: float) -> str:
    for threshold, label in MASTERY_LABELS:
        if score >= threshold:
            return label
    return "Struggling"


def lag_score(pending: int, overdue: int, avg_days_overdue: float, rate: float) -> int:
    overdue_ratio = overdue / pending * 100 if pending > 0 else 0
    lateness = min(avg_days_overdue, 30) / 30 * 100
    return round(_clamp(0.4 * overdue_ratio + 0.3 * lateness + 0.3 * (100 - rate)))


def lag_label(score: float) -> str:
    for threshold, label in LAG_LABELS:
        if score < threshold:
            return label
    return "Critical"


def trend(first_half_rate: float, second_half_rate: float) -> str:
    if second_half_rate - first_half_rate >= TREND_THRESHOLD:
        return "improving"
    if first_half_rate - second_half_rate >= TREND_THRESHOLD:
        return "declining"
    return "flat"


# ---------- snapshot helpers ----------

def in_period(tasks: Iterable, start: datetime) -> list:
    return [t for t in tasks if t.reference_time is not None and t.reference_time >= start]


def is_overdue(task, today: date) -> bool:
    return not task.done and task.deadline is not None and task.deadline < today


def _completion_day(task) -> date | None:
    ts = task.completed_at or task.created_at
    return ts.date() if ts else None


@dataclass
class _Bucket:
    total: int = 0
    completed: int = 0
    high_completed: int = 0
    minutes: float = 0
    active_days: set = field(default_factory=set)
    halves: list = field(default_factory=lambda: [[0, 0], [0, 0]])   # [done, total] per half


# ---------- reports ----------

def task_mastery_stats(tasks: Iterable, period: str, now: datetime) -> list[dict]:
    days = period_days(period)
    start = now - timedelta(days=days)
    mid = now - timedelta(days=days / 2)

    buckets: dict[str, _Bucket] = {}
    for t in in_period(tasks, start):
        b = buckets.setdefault(t.category_name, _Bucket())
        half = b.halves[0 if t.reference_time < mid else 1]
        b.total += 1
        half[1] += 1
        if t.done:
            b.completed += 1
            half[0] += 1
            b.minutes += t.minutes_spent
            if t.priority == "high":
                b.high_completed += 1
            day = _completion_day(t)
            if day:
                b.active_days.add(day)

    rows = []
    for category, b in buckets.items():
        rate = completion_rate(b.completed, b.total - b.completed)
        score = mastery_score(rate, len(b.active_days), days, b.high_completed, b.completed)
        (first_done, first_total), (second_done, second_total) = b.halves
        rows.append({
            "category": category,
            "mastery_score": score,
            "mastery_label": mastery_label(score),
            "trend": trend(
                completion_rate(first_done, first_total - first_done),
                completion_rate(second_done, second_total - second_done),
            ),
            "completed": b.completed,
            "total": b.total,
            "completion_rate": rate,
            "active_days": len(b.active_days),
            "consistency_score": round(_clamp(len(b.active_days) / days * 100)),
            "high_priority_completed": b.high_completed,
            "avg_time_minutes": round(b.minutes / b.completed) if b.completed else 0,
        })
    rows.sort(key=lambda r: r["mastery_score"], reverse=True)
    return rows


def _lag_figures(tasks: list, today: date) -> dict:
    completed = sum(1 for t in tasks if t.done)
    overdue_days = [(today - t.deadline).days for t in tasks if is_overdue(t, today)]
    pending = len(tasks) - completed
    avg_overdue = round(sum(overdue_days) / len(overdue_days)) if overdue_days else 0
    rate = completion_rate(completed, pending)
    return {
        "total": len(tasks),
        "completed": completed,
        "pending_count": pending,
        "overdue_count": len(overdue_days),
        "avg_days_overdue": avg_overdue,
        "completion_rate": rate,
        # nothing to lag behind on
        "lag_score": lag_score(pending, len(overdue_days), avg_overdue, rate) if tasks else 0,
    }


def lag_indicators(tasks: Iterable, period: str, now: datetime) -> dict:
    today = now.date()
    period_tasks = in_period(tasks, now - timedelta(days=period_days(period)))

    by_category: dict[str, list] = {}
    for t in period_tasks:
        by_category.setdefault(t.category_name, []).append(t)

    lag_categories = []
    for category, cat_tasks in by_category.items():
        figures = _lag_figures(cat_tasks, today)
        done_times = [t.completed_at or t.created_at for t in cat_tasks if t.done and (t.completed_at or t.created_at)]
        last = max(done_times) if done_times else None
        lag_categories.append({
            "category": category,
            **figures,
            "lag_label": lag_label(figures["lag_score"]),
            "last_completed_at": last.date() if last else None,
            "days_since_last_completion": (now - last).days if last else None,
        })
    # worst first
    lag_categories.sort(key=lambda r: (-r["lag_score"], r["completion_rate"]))

    lag_priorities = []
    for priority in PRIORITIES:
        p_tasks = [t for t in period_tasks if t.priority == priority]
        figures = _lag_figures(p_tasks, today)
        lag_priorities.append({
            "priority": priority,
            "total": figures["total"],
            "completed": figures["completed"],
            "pending_count": figures["pending_count"],
            "overdue_count": figures["overdue_count"],
            "completion_rate": figures["completion_rate"],
            "lag_score": figures["lag_score"],
        })

    overall = _lag_figures(period_tasks, today)["lag_score"]
    return {
        "lag_categories": lag_categories,
        "lag_priorities": lag_priorities,
        "overall_lag_score": overall,
        "overall_lag_label": lag_label(overall),
    }


def pattern_window_days(pattern: str | None, interval: int | None) -> int:
    n = max(1, interval or 1)
    if pattern == "daily":
        return n
    if pattern == "weekly":
        return 7 * n
    if pattern == "monthly":
        return 30 * n
    if pattern == "custom":
        return n
    return 7


def _last_completion_by_root(tasks: list) -> dict[str, datetime]:
    last: dict[str, datetime] = {}
    for t in tasks:
        stamps = []
        if t.done and t.is_recurring and (t.completed_at or t.created_at):
            stamps.append(t.completed_at or t.created_at)
        if t.last_completed_date:
            stamps.append(datetime.combine(t.last_completed_date, time.min))
        for ts in stamps:
            if t.root_id not in last or ts > last[t.root_id]:
                last[t.root_id] = ts
    return last


def missed_tasks_analysis(tasks: Iterable, now: datetime, never_started_days: int = 7) -> dict:
    tasks = list(tasks)
    today = now.date()

    overdue = [
        {
            "id": t.id,
            "text": t.text,
            "priority": t.priority_name,
            "category": t.category_name,
            "deadline": t.deadline,
            "days_overdue": (today - t.deadline).days,
        }
        for t in tasks if is_overdue(t, today)
    ]
    overdue.sort(key=lambda r: r["days_overdue"], reverse=True)

    never_started = [
        {
            "id": t.id,
            "text": t.text,
            "priority": t.priority_name,
            "category": t.category_name,
            "created_days_ago": (now - t.created_at).days,
        }
        for t in tasks
        if not t.done
        and t.created_at is not None
        and now - t.created_at > timedelta(days=never_started_days)
        and not t.minutes_spent
    ]
    never_started.sort(key=lambda r: r["created_days_ago"], reverse=True)

    last_by_root = _last_completion_by_root(tasks)
    skipped = []
    for t in tasks:
        if not t.is_recurring or t.done:
            continue
        last = last_by_root.get(t.root_id)
        window = timedelta(days=pattern_window_days(t.recurring_pattern, t.recurring_interval))
        if last is not None and now - last <= window:
            continue
        skipped.append({
            "id": t.id,
            "text": t.text,
            "priority": t.priority_name,
            "category": t.category_name,
            "pattern": t.recurring_pattern or "custom",
            "interval": t.recurring_interval or 1,
            "last_completed_date": last.date() if last else None,
            "days_since_last_completion": (now - last).days if last else None,
        })
    # never-completed series first
    skipped.sort(key=lambda r: r["days_since_last_completion"] if r["days_since_last_completion"] is not None else 9999, reverse=True)

    return {
        "overdue_tasks": overdue,
        "never_started_tasks": never_started,
        "skipped_recurring": skipped,
        "summary": {
            "total_missed": len(overdue) + len(never_started) + len(skipped),
            "overdue_count": len(overdue),
            "never_started_count": len(never_started),
            "recurring_missed": len(skipped),
            "critical_missed": sum(1 for r in overdue if r["priority"] == "high"),
        },
    }
