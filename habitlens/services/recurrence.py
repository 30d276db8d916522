"""
Recurrence resolution: which dates a recurring series is due on.

Everything here is a pure function of the definition and the requested
window. Weekday numbers follow the task store: 0 = Sunday .. 6 = Saturday.
"""
from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator

PATTERNS = ("daily", "weekly", "monthly", "custom")
DEFAULT_PATTERN = "daily"


@dataclass(frozen=True)
class RecurrenceDefinition:
    pattern: str
    anchor_date: date
    interval: int = 1
    weekdays: tuple[int, ...] = ()


# ---------- helpers ----------

def _clean_pattern(pattern) -> str:
    return pattern if pattern in PATTERNS else DEFAULT_PATTERN


def _clean_interval(interval) -> int:
    try:
        n = int(interval)
    except (TypeError, ValueError):
        return 1
    return max(1, n)


def _clean_weekdays(weekdays) -> tuple[int, ...]:
    """Keep integer values 0..6; anything else is ignored."""
    cleaned = set()
    for raw in weekdays or ():
        if isinstance(raw, bool):
            continue
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        if isinstance(raw, int) and 0 <= raw <= 6:
            cleaned.add(raw)
    return tuple(sorted(cleaned))


def sunday_weekday(d: date) -> int:
    """Weekday with Sunday = 0 (python's weekday() has Monday = 0)."""
    return (d.weekday() + 1) % 7


def _week_start(d: date) -> date:
    return d - timedelta(days=sunday_weekday(d))


def _first_weekday_match(anchor: date, weekdays: tuple[int, ...]) -> date:
    """First date on or after ``anchor`` falling on one of ``weekdays``."""
    return min(anchor + timedelta(days=(dow - sunday_weekday(anchor)) % 7) for dow in weekdays)


def _month_date(anchor: date, months_ahead: int) -> date:
    # clamp to the month's last day; always computed from the anchor so a
    # short month never drifts the following ones
    idx = anchor.month - 1 + months_ahead
    year, month = anchor.year + idx // 12, idx % 12 + 1
    return date(year, month, min(anchor.day, monthrange(year, month)[1]))


def _max_gap_days(defn: RecurrenceDefinition) -> int:
    if defn.pattern == "weekly":
        return 7 * defn.interval
    if defn.pattern == "monthly":
        return 31 * defn.interval
    return defn.interval


# ---------- public ----------

def make_definition(pattern, anchor_date: date, interval=None, weekdays=None) -> RecurrenceDefinition:
    """Build a definition, degrading legacy or malformed fields to defaults."""
    pattern = _clean_pattern(pattern)
    days = _clean_weekdays(weekdays) if pattern == "weekly" else ()
    return RecurrenceDefinition(
        pattern=pattern,
        anchor_date=anchor_date,
        interval=_clean_interval(interval),
        weekdays=days,
    )


def definition_from_task(task) -> RecurrenceDefinition | None:
    """
    Definition for a task record. The anchor is the series start date, else
    the deadline, else the creation day. None when no anchor is known.
    """
    anchor = getattr(task, "recurring_start_date", None) or getattr(task, "deadline", None)
    if anchor is None:
        created = getattr(task, "created_at", None)
        if created is None:
            return None
        anchor = created.date() if isinstance(created, datetime) else created
    return make_definition(
        getattr(task, "recurring_pattern", None),
        anchor,
        getattr(task, "recurring_interval", None),
        getattr(task, "recurring_days", None),
    )


def iter_occurrences(defn: RecurrenceDefinition, start: date) -> Iterator[date]:
    """Ascending, unbounded occurrences on or after ``start`` (and the anchor)."""
    anchor = defn.anchor_date
    start = max(start, anchor)

    if defn.pattern == "weekly" and defn.weekdays:
        base = _week_start(_first_weekday_match(anchor, defn.weekdays))
        week = (_week_start(start) - base).days // 7
        if week % defn.interval:
            week += defn.interval - week % defn.interval
        while True:
            week_start = base + timedelta(weeks=week)
            for dow in defn.weekdays:
                d = week_start + timedelta(days=dow)
                if d >= start:
                    yield d
            week += defn.interval

    elif defn.pattern == "monthly":
        elapsed = (start.year - anchor.year) * 12 + start.month - anchor.month
        k = max(0, elapsed // defn.interval - 1)
        while True:
            d = _month_date(anchor, k * defn.interval)
            if d >= start:
                yield d
            k += 1

    else:
        step = 7 * defn.interval if defn.pattern == "weekly" else defn.interval
        k = -(-(start - anchor).days // step)
        while True:
            yield anchor + timedelta(days=k * step)
            k += 1


def resolve_occurrences(
    defn: RecurrenceDefinition,
    start: date,
    end: date,
    include_start: bool = True,
    include_end: bool = False,
) -> list[date]:
    """Applicable dates between ``start`` and ``end``; bound inclusion is the caller's call."""
    lo = start if include_start else start + timedelta(days=1)
    out: list[date] = []
    if lo > end:
        return out
    for d in iter_occurrences(defn, lo):
        if d > end or (d == end and not include_end):
            break
        out.append(d)
    return out


def previous_occurrence(defn: RecurrenceDefinition, on_or_before: date) -> date | None:
    """Latest applicable date not after ``on_or_before``; None before the anchor."""
    if on_or_before < defn.anchor_date:
        return None
    lo = max(defn.anchor_date, on_or_before - timedelta(days=_max_gap_days(defn)))
    dates = resolve_occurrences(defn, lo, on_or_before, include_end=True)
    return dates[-1] if dates else None


def next_occurrence(defn: RecurrenceDefinition, after: date) -> date:
    return next(iter_occurrences(defn, after + timedelta(days=1)))
