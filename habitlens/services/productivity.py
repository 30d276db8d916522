"""
Productivity scoring and narrative insights over a task snapshot.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable

from .compliance import PRIORITIES, period_days
from .recurrence import sunday_weekday

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
PRIORITY_WEIGHTS = {"high": 3, "medium": 2, "low": 1}
MAX_EFFICIENCY = 150
MAX_ACTIVITY_HOURS = 8


def format_time(minutes: float | None) -> str:
    if not minutes:
        return "0m"
    hours = int(minutes // 60)
    mins = round(minutes % 60)
    if hours > 0:
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    return f"{mins}m"


def format_hour(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour < 12:
        return f"{hour} AM"
    if hour == 12:
        return "12 PM"
    return f"{hour - 12} PM"


def time_efficiency(tasks: Iterable) -> float:
    """Estimated vs actual time over done tasks with both; 100 (neutral) without data."""
    timed = [t for t in tasks if t.done and (t.estimated_minutes or 0) > 0 and t.minutes_spent > 0]
    if not timed:
        return 100.0
    estimated = sum(t.estimated_minutes for t in timed)
    actual = sum(t.minutes_spent for t in timed)
    return round(estimated / actual * 100, 2)


def priority_stats(tasks: Iterable) -> dict:
    stats = {"high": 0, "medium": 0, "low": 0, "none": 0}
    for t in tasks:
        stats[t.priority if t.priority in PRIORITIES else "none"] += 1
    return stats


def category_stats(tasks: Iterable) -> dict:
    stats: dict[str, dict] = {}
    for t in tasks:
        s = stats.setdefault(t.category_name, {"total": 0, "completed": 0, "time_spent": 0})
        s["total"] += 1
        if t.done:
            s["completed"] += 1
            s["time_spent"] += t.minutes_spent
    for s in stats.values():
        s["completion_rate"] = round(s["completed"] / s["total"] * 100, 2) if s["total"] else 0
        s["avg_time"] = round(s["time_spent"] / s["completed"], 2) if s["completed"] else 0
    return stats


def productivity_score(
    completion_rate: float,
    time_efficiency: float,
    done_by_priority: dict,
    total_tasks: int,
    minutes: float,
) -> int:
    # the 20 and 10 factors are the 20% / 10% weights on already-normalised sub-scores
    weighted = sum(PRIORITY_WEIGHTS[p] * (done_by_priority.get(p) or 0) for p in PRIORITY_WEIGHTS)
    priority_component = weighted / max(total_tasks, 1) * 20
    activity_component = min(minutes / 60, MAX_ACTIVITY_HOURS) / MAX_ACTIVITY_HOURS * 10
    score = (
        0.4 * completion_rate
        + 0.3 * min(time_efficiency, MAX_EFFICIENCY)
        + priority_component
        + activity_component
    )
    return round(max(0, min(100, score)))


def productivity_metrics(tasks: Iterable, start: datetime, end: datetime) -> dict:
    in_range = [t for t in tasks if t.reference_time is not None and start <= t.reference_time <= end]
    done = [t for t in in_range if t.done]
    total = len(in_range)

    rate = len(done) / total * 100 if total else 0
    minutes = sum(t.minutes_spent for t in done)
    efficiency = time_efficiency(in_range)
    done_by_priority = priority_stats(done)

    return {
        "total_todos": total,
        "completed_todos": len(done),
        "completion_rate": round(rate, 2),
        "total_time_spent": minutes,
        "total_estimated_time": sum(t.estimated_minutes or 0 for t in in_range),
        "time_efficiency": efficiency,
        "avg_time_per_task": round(minutes / len(done), 2) if done else 0,
        "priority_stats": done_by_priority,
        "category_stats": category_stats(in_range),
        "productivity_score": productivity_score(rate, efficiency, done_by_priority, total, minutes),
        "date_range": {"start": start.date(), "end": end.date()},
    }


def time_patterns(tasks: Iterable) -> dict:
    stamps = [t.completed_at for t in tasks if t.done and t.completed_at]
    by_day = [0] * 7
    by_hour = [0] * 24
    for ts in stamps:
        by_day[sunday_weekday(ts.date())] += 1
        by_hour[ts.hour] += 1
    if not stamps:
        return {"day_of_week": by_day, "hour_of_day": by_hour, "peak_day": None, "peak_hour": None}
    peak_day = by_day.index(max(by_day))
    peak_hour = by_hour.index(max(by_hour))
    return {
        "day_of_week": by_day,
        "hour_of_day": by_hour,
        "peak_day": peak_day,
        "peak_hour": peak_hour,
        "peak_day_count": by_day[peak_day],
        "peak_hour_count": by_hour[peak_hour],
    }


def activity_streaks(tasks: Iterable, today: date) -> dict:
    """Day streaks over the days on which at least one task was completed."""
    days = sorted({t.completed_at.date() for t in tasks if t.done and t.completed_at}, reverse=True)
    if not days:
        return {"current_streak": 0, "longest_streak": 0, "last_completion_date": None, "total_active_days": 0}

    current = 0
    active = set(days)
    cursor = today
    while cursor in active:
        current += 1
        cursor -= timedelta(days=1)

    longest = run = 1
    for prev, d in zip(days, days[1:]):
        run = run + 1 if (prev - d).days == 1 else 1
        longest = max(longest, run)

    return {
        "current_streak": current,
        "longest_streak": longest,
        "last_completion_date": days[0],
        "total_active_days": len(days),
    }


def productivity_insights(tasks: Iterable, today: date) -> dict:
    tasks = list(tasks)
    done = [t for t in tasks if t.done]
    if not done:
        return {
            "insights": ["Start completing tasks to see productivity insights!"],
            "patterns": {},
            "recommendations": [],
        }

    insights: list[str] = []
    recommendations: list[str] = []
    patterns = time_patterns(tasks)

    if patterns["peak_day"] is not None:
        share = round(patterns["peak_day_count"] / len(done) * 100)
        insights.append(f"You're most productive on {DAY_NAMES[patterns['peak_day']]}s ({share}% of tasks)")
    if patterns["peak_hour"] is not None:
        share = round(patterns["peak_hour_count"] / len(done) * 100)
        insights.append(f"Peak productivity time: {format_hour(patterns['peak_hour'])} ({share}% of completions)")

    efficiency = time_efficiency(tasks)
    if efficiency < 80:
        insights.append(f"Tasks take {round(100 * 100 / efficiency - 100)}% longer than estimated - consider more realistic planning")
    elif efficiency > 120:
        insights.append(f"You finish tasks {round(efficiency - 100)}% faster than estimated - great efficiency!")

    high_share = round(sum(1 for t in done if t.priority == "high") / len(done) * 100)
    if high_share > 50:
        insights.append(f"{high_share}% of completed tasks were high priority - excellent focus!")
    elif high_share < 20:
        insights.append(f"Only {high_share}% of completed tasks were high priority - consider prioritizing better")

    high = [t.minutes_spent for t in done if t.priority == "high"]
    other = [t.minutes_spent for t in done if t.priority != "high"]
    avg_high = sum(high) / len(high) if high else 0
    avg_other = sum(other) / len(other) if other else 0
    if avg_other > 0 and avg_high > avg_other * 1.5:
        insights.append(f"High priority tasks take {round(avg_high / avg_other * 100)}% of the time other tasks take")

    streaks = activity_streaks(tasks, today)
    if streaks["current_streak"] > 0:
        n = streaks["current_streak"]
        insights.append(f"Current productivity streak: {n} day{'s' if n > 1 else ''}")
    if streaks["longest_streak"] > 7:
        insights.append(f"Longest productivity streak: {streaks['longest_streak']} days - impressive consistency!")

    peak_hour = patterns["peak_hour"]
    if peak_hour is not None and 9 <= peak_hour <= 11:
        recommendations.append("Schedule your most important tasks in the morning when you're most productive")
    elif peak_hour is not None and 14 <= peak_hour <= 16:
        recommendations.append("Your afternoon productivity peak is ideal for focused work")
    if efficiency < 70:
        recommendations.append("Consider breaking down large tasks or adding buffer time to estimates")
    if len({t.category_name for t in done}) > 5:
        recommendations.append("Consider consolidating categories to maintain better focus")

    return {
        "insights": insights,
        "patterns": {
            **patterns,
            "peak_day_name": DAY_NAMES[patterns["peak_day"]] if patterns["peak_day"] is not None else None,
            "avg_efficiency": efficiency,
            "streaks": streaks,
        },
        "recommendations": recommendations,
    }


def _day_of(task) -> date | None:
    ts = task.completed_at or task.created_at
    return ts.date() if ts else None


def daily_productivity_data(tasks: Iterable, today: date, days: int = 30) -> list[dict]:
    """Per-day completions for the ``days`` days ending ``today``, oldest first."""
    per_day: dict[date, list] = {}
    for t in tasks:
        day = _day_of(t) if t.done else None
        if day is not None:
            per_day.setdefault(day, []).append(t)

    rows = []
    for i in range(days - 1, -1, -1):
        day = today - timedelta(days=i)
        done = per_day.get(day, [])
        minutes = sum(t.minutes_spent for t in done)
        by_priority = priority_stats(done)
        rows.append({
            "date": day,
            "completed": len(done),
            "time_spent": minutes,
            "high_priority": by_priority["high"],
            "medium_priority": by_priority["medium"],
            "low_priority": by_priority["low"],
            "productivity_score": min(100, len(done) * 10 + minutes / 60 * 5) if done else 0,
        })
    return rows


def _filter_done(
    tasks: Iterable,
    period: str,
    now: datetime,
    categories=None,
    subcategories=None,
    activity_types=None,
) -> list:
    start = now - timedelta(days=period_days(period))
    picked = []
    for t in tasks:
        if not t.done:
            continue
        # done without any timestamp still counts
        ts = t.completed_at or t.created_at
        if ts is not None and ts < start:
            continue
        if categories and t.category_name not in categories:
            continue
        if subcategories and t.subcategory not in subcategories:
            continue
        if activity_types and t.activity_type not in activity_types:
            continue
        picked.append(t)
    return picked


def _category_levels(t) -> list[tuple[str, dict]]:
    """(key, identity) for the main, sub and activity level entries a task counts towards."""
    main, sub, act = t.category_name, t.subcategory, t.activity_type
    levels = [(f"main:{main}", {"name": main, "type": "main", "main_category": main, "subcategory": None, "activity_type": None})]
    if sub:
        levels.append((f"sub:{main}:{sub}", {
            "name": f"{main} › {sub}", "type": "subcategory",
            "main_category": main, "subcategory": sub, "activity_type": None,
        }))
    if act:
        levels.append((f"act:{main}:{sub or 'none'}:{act}", {
            "name": f"{main}{f' › {sub}' if sub else ''} › {act}", "type": "activity",
            "main_category": main, "subcategory": sub, "activity_type": act,
        }))
    return levels


def _tally(entries: dict, key: str, identity: dict, t) -> None:
    e = entries.setdefault(key, {
        "id": key, **identity,
        "completed": 0, "time_spent": 0, "high_priority": 0, "medium_priority": 0, "low_priority": 0,
    })
    e["completed"] += 1
    e["time_spent"] += t.minutes_spent
    if t.priority in PRIORITIES:
        e[f"{t.priority}_priority"] += 1


def category_performance(tasks: Iterable, period: str, now: datetime, **filters) -> list[dict]:
    """Done tasks per main category, subcategory and activity type, most completed first."""
    entries: dict[str, dict] = {}
    for t in _filter_done(tasks, period, now, **filters):
        for key, identity in _category_levels(t):
            _tally(entries, key, identity, t)
    rows = [
        {**e, "avg_time_per_task": round(e["time_spent"] / e["completed"], 2)}
        for e in entries.values()
    ]
    rows.sort(key=lambda r: r["completed"], reverse=True)
    return rows


def category_statistics(tasks: Iterable, period: str, now: datetime, **filters) -> dict:
    rows = category_performance(tasks, period, now, **filters)
    by_type = {
        level: [r for r in rows if r["type"] == level]
        for level in ("main", "subcategory", "activity")
    }
    fields = ("completed", "time_spent", "high_priority", "medium_priority", "low_priority")
    return {
        "main_categories": by_type["main"],
        "subcategories": by_type["subcategory"],
        "activity_types": by_type["activity"],
        # summed over every level, so a task with a subcategory counts more than once
        "totals": {f: sum(r[f] for r in rows) for f in fields},
    }
