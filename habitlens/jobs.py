import logging
from datetime import datetime, timedelta

import pytz
from apscheduler.schedulers.background import BackgroundScheduler

from .config import settings
from .deps import SessionLocal
from .services.ledger import OccurrenceLedger

logger = logging.getLogger(__name__)

_tz = pytz.timezone(settings.timezone)
scheduler = BackgroundScheduler(timezone=_tz)


def missed_check_due(last_run_at: datetime | None, now: datetime, min_interval: timedelta) -> bool:
    """Throttle policy for the batch missed-check; the ledger itself never throttles."""
    return last_run_at is None or now - last_run_at >= min_interval


class MissedCheckJob:
    """Runs the batch missed-check, remembering when it last ran."""

    def __init__(self, min_interval: timedelta, session_factory=SessionLocal, tz=_tz):
        self.min_interval = min_interval
        self.session_factory = session_factory
        self.tz = tz
        self.last_run_at: datetime | None = None

    def run(self, now: datetime | None = None) -> dict | None:
        # "today" is the configured timezone's day, not UTC's
        now = now or datetime.now(self.tz)
        if not missed_check_due(self.last_run_at, now, self.min_interval):
            return None
        db = self.session_factory()
        try:
            result = OccurrenceLedger(db).check_all_missed_recurring(now.date())
        finally:
            db.close()
        self.last_run_at = now
        logger.info(
            "[jobs] missed check: %d series, %d new misses, %d errors",
            result["processed"], result["total_new_misses"], len(result["errors"]),
        )
        return result


missed_check_job = MissedCheckJob(timedelta(minutes=settings.missed_check_interval_minutes))


def start_scheduler():
    # Avoid duplicate jobs if reloader starts twice
    if not scheduler.get_jobs():
        scheduler.add_job(missed_check_job.run, "interval", minutes=settings.missed_check_interval_minutes)
    scheduler.start()
