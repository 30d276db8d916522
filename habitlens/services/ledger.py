"""
Occurrence ledger: per-series date -> status history and streak counters.

This is the only writer of ``occurrence_entries`` and ``series_states``.
Each public mutation is one unit of work: it either commits completely or is
rolled back. Duplicate (root, date) rows are prevented by the table's unique
key; when a concurrent writer wins that race the unit is retried once and
then simply sees the other writer's rows.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from .compliance import completion_rate
from .recurrence import (
    RecurrenceDefinition,
    make_definition,
    previous_occurrence,
    resolve_occurrences,
)

logger = logging.getLogger(__name__)

COMPLETED = "completed"
MISSED = "missed"


class LedgerError(Exception):
    pass


class OccurrenceLedger:
    def __init__(self, db: Session):
        self.db = db

    # ---------- helpers ----------

    def _unit_of_work(self, fn: Callable):
        for attempt in (1, 2):
            try:
                result = fn()
                self.db.commit()
                return result
            except IntegrityError:
                self.db.rollback()
                if attempt == 2:
                    raise
                logger.info("[ledger] concurrent write on the same occurrence, retrying")
            except Exception:
                self.db.rollback()
                raise

    def _state(self, root_id: str) -> models.SeriesState:
        state = self.db.get(models.SeriesState, root_id)
        if state is None:
            raise LedgerError(f"Unknown recurring series {root_id!r}")
        return state

    @staticmethod
    def definition(state: models.SeriesState) -> RecurrenceDefinition:
        return make_definition(state.pattern, state.anchor_date, state.interval, state.weekdays)

    def _entries(self, root_id: str) -> list[models.OccurrenceEntry]:
        return (
            self.db.query(models.OccurrenceEntry)
            .filter(models.OccurrenceEntry.recurring_root_id == root_id)
            .order_by(models.OccurrenceEntry.date.asc())
            .all()
        )

    def _recompute_streaks(self, state: models.SeriesState) -> None:
        statuses = {e.date: e.status for e in self._entries(state.recurring_root_id)}
        completed_dates = [d for d, s in statuses.items() if s == COMPLETED]
        state.last_completed_date = max(completed_dates) if completed_dates else None
        if not statuses:
            state.current_streak = 0
            state.longest_streak = 0
            return

        defn = self.definition(state)
        latest = max(statuses)
        timeline = sorted(set(resolve_occurrences(defn, defn.anchor_date, latest, include_end=True)) | set(statuses))

        longest = run = 0
        for d in timeline:
            run = run + 1 if statuses.get(d) == COMPLETED else 0
            longest = max(longest, run)

        current = 0
        for d in reversed(timeline):
            if statuses.get(d) != COMPLETED:
                break
            current += 1

        state.current_streak = current
        state.longest_streak = longest

    def _accumulate_metrics(self, state, on: date, count, time_minutes, distance, distance_unit) -> None:
        count, time_minutes, distance = count or 0, time_minutes or 0, distance or 0
        state.total_count = (state.total_count or 0) + count
        state.total_time_minutes = (state.total_time_minutes or 0) + time_minutes
        state.total_distance = (state.total_distance or 0) + distance
        if state.last_metric_date == on:
            state.today_count = (state.today_count or 0) + count
            state.today_time_minutes = (state.today_time_minutes or 0) + time_minutes
            state.today_distance = (state.today_distance or 0) + distance
        else:
            state.today_count = count
            state.today_time_minutes = time_minutes
            state.today_distance = distance
        if distance_unit:
            state.distance_unit = distance_unit
        state.last_metric_date = on

    # ---------- series registry ----------

    def register_series(self, root_id: str, defn: RecurrenceDefinition, task_text: str = "") -> models.SeriesState:
        def work():
            state = self.db.get(models.SeriesState, root_id)
            if state is None:
                state = models.SeriesState(recurring_root_id=root_id)
                self.db.add(state)
            state.task_text = task_text or state.task_text or ""
            state.pattern = defn.pattern
            state.interval = defn.interval
            state.weekdays = list(defn.weekdays)
            state.anchor_date = defn.anchor_date
            state.active = True
            self.db.flush()
            return state

        return self._unit_of_work(work)

    def deactivate_series(self, root_id: str) -> None:
        def work():
            self._state(root_id).active = False

        self._unit_of_work(work)

    # ---------- completions ----------

    def overwrite_missed_with_completion(self, state: models.SeriesState, entry: models.OccurrenceEntry) -> None:
        """A late completion replaces the miss; ``corrected_at`` keeps the trail."""
        entry.status = COMPLETED
        entry.corrected_at = datetime.utcnow()
        state.total_missed = max(0, (state.total_missed or 0) - 1)
        state.total_completed = (state.total_completed or 0) + 1

    def record_completion(
        self,
        root_id: str,
        on: date,
        count: float | None = None,
        time_minutes: float | None = None,
        distance: float | None = None,
        distance_unit: str | None = None,
    ) -> dict:
        """
        Mark the occurrence fulfilled by a completion on ``on`` as completed.

        The completion counts for the latest applicable date on or before
        ``on``. Calling again for the same occurrence leaves the entry and
        the counters alone; metric values are still added to the aggregates.
        """
        def work():
            state = self._state(root_id)
            occurrence = previous_occurrence(self.definition(state), on)
            if occurrence is None:
                raise LedgerError(f"{on.isoformat()} is before the start of series {root_id!r}")

            entry = (
                self.db.query(models.OccurrenceEntry)
                .filter_by(recurring_root_id=root_id, date=occurrence)
                .first()
            )
            if entry is not None and entry.status == COMPLETED:
                outcome = "unchanged"
            elif entry is not None:
                self.overwrite_missed_with_completion(state, entry)
                outcome = "corrected"
            else:
                self.db.add(models.OccurrenceEntry(recurring_root_id=root_id, date=occurrence, status=COMPLETED))
                self.db.flush()
                state.total_completed = (state.total_completed or 0) + 1
                outcome = "created"

            # every logged completion carries its own metrics, even on a done occurrence
            self._accumulate_metrics(state, on, count, time_minutes, distance, distance_unit)
            if outcome != "unchanged":
                self.db.flush()
                self._recompute_streaks(state)

            return {
                "recurring_root_id": root_id,
                "date": occurrence,
                "outcome": outcome,
                "current_streak": state.current_streak,
                "longest_streak": state.longest_streak,
                "total_completed": state.total_completed,
                "total_missed": state.total_missed,
            }

        return self._unit_of_work(work)

    # ---------- missed detection ----------

    def _check_series(self, root_id: str, as_of: date) -> int:
        state = self._state(root_id)
        defn = self.definition(state)
        # the previous check excluded its own as_of, so that day is due now
        lo = state.last_checked_date or defn.anchor_date
        if lo >= as_of:
            return 0

        existing = {
            d for (d,) in self.db.query(models.OccurrenceEntry.date)
            .filter(
                models.OccurrenceEntry.recurring_root_id == root_id,
                models.OccurrenceEntry.date >= lo,
                models.OccurrenceEntry.date < as_of,
            )
            .all()
        }
        new_misses = 0
        for d in resolve_occurrences(defn, lo, as_of):
            if d not in existing:
                self.db.add(models.OccurrenceEntry(recurring_root_id=root_id, date=d, status=MISSED))
                new_misses += 1
        self.db.flush()

        state.total_missed = (state.total_missed or 0) + new_misses
        state.last_checked_date = as_of
        if new_misses:
            self._recompute_streaks(state)
        return new_misses

    def check_for_misses(self, root_id: str, as_of: date) -> int:
        """Log every applicable date before ``as_of`` that has no entry as missed."""
        new_misses = self._unit_of_work(lambda: self._check_series(root_id, as_of))
        if new_misses:
            logger.info("[ledger] %s: %d new missed occurrence(s) before %s", root_id, new_misses, as_of)
        return new_misses

    def check_all_missed_recurring(self, as_of: date) -> dict:
        root_ids = [
            rid for (rid,) in self.db.query(models.SeriesState.recurring_root_id)
            .filter(models.SeriesState.active == True)  # noqa: E712
            .order_by(models.SeriesState.recurring_root_id.asc())
            .all()
        ]
        processed = total_new = 0
        errors: list[dict] = []
        for root_id in root_ids:
            try:
                total_new += self.check_for_misses(root_id, as_of)
                processed += 1
            except Exception as e:
                # log and continue; one broken series must not block the rest
                logger.warning("[ledger] missed check failed for %s: %s", root_id, e)
                errors.append({"recurring_root_id": root_id, "error": str(e)})
        return {"processed": processed, "total_new_misses": total_new, "errors": errors}

    # ---------- reporting ----------

    def history(self, root_id: str) -> list[dict]:
        return [
            {"date": e.date, "status": e.status, "corrected_at": e.corrected_at}
            for e in self._entries(root_id)
        ]

    def _missed_query(self, start: date | None, end: date | None):
        q = self.db.query(models.OccurrenceEntry).filter(models.OccurrenceEntry.status == MISSED)
        if start:
            q = q.filter(models.OccurrenceEntry.date >= start)
        if end:
            q = q.filter(models.OccurrenceEntry.date <= end)
        return q.order_by(models.OccurrenceEntry.date.desc(), models.OccurrenceEntry.recurring_root_id.asc())

    def missed_logs(
        self,
        root_id: str,
        start: date | None = None,
        end: date | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Missed occurrences of one series, newest first; both bounds inclusive."""
        self._state(root_id)
        q = self._missed_query(start, end).filter(models.OccurrenceEntry.recurring_root_id == root_id)
        if limit:
            q = q.limit(limit)
        return [{"date": e.date, "logged_at": e.logged_at} for e in q.all()]

    def all_missed_logs(self, start: date | None = None, end: date | None = None) -> list[dict]:
        texts = dict(self.db.query(models.SeriesState.recurring_root_id, models.SeriesState.task_text).all())
        return [
            {
                "recurring_root_id": e.recurring_root_id,
                "task_text": texts.get(e.recurring_root_id, ""),
                "date": e.date,
                "logged_at": e.logged_at,
            }
            for e in self._missed_query(start, end).all()
        ]

    def all_recurring_stats(self, today: date, history_days: int = 30) -> list[dict]:
        """Stats for every active series, worst compliance first."""
        states = (
            self.db.query(models.SeriesState)
            .filter(models.SeriesState.active == True)  # noqa: E712
            .all()
        )
        window_start = today - timedelta(days=history_days - 1)
        rows = []
        for s in states:
            statuses = {
                e.date: e.status for e in self.db.query(models.OccurrenceEntry)
                .filter(
                    models.OccurrenceEntry.recurring_root_id == s.recurring_root_id,
                    models.OccurrenceEntry.date >= window_start,
                    models.OccurrenceEntry.date <= today,
                )
                .all()
            }
            history = [
                {"date": d, "status": statuses.get(d, "none")}
                for d in (window_start + timedelta(days=i) for i in range(history_days))
            ]
            is_today = s.last_metric_date == today
            rows.append({
                "recurring_root_id": s.recurring_root_id,
                "task_text": s.task_text,
                "pattern": s.pattern,
                "interval": s.interval,
                "weekdays": list(s.weekdays or []),
                "current_streak": s.current_streak,
                "longest_streak": s.longest_streak,
                "total_completed": s.total_completed,
                "total_missed": s.total_missed,
                "completion_rate": completion_rate(s.total_completed, s.total_missed),
                "history": history,
                "last_completed_date": s.last_completed_date,
                "aggregate_metrics": {
                    "total_count": s.total_count or 0,
                    "today_count": (s.today_count or 0) if is_today else 0,
                    "total_time_minutes": s.total_time_minutes or 0,
                    "today_time_minutes": (s.today_time_minutes or 0) if is_today else 0,
                    "total_distance": s.total_distance or 0,
                    "today_distance": (s.today_distance or 0) if is_today else 0,
                    "distance_unit": s.distance_unit,
                },
            })
        rows.sort(key=lambda r: r["completion_rate"])
        return rows
