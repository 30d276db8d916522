from __future__ import annotations

from datetime import date, datetime, timedelta
import unittest

from habitlens.services import compliance
from tests.helpers import at, task

NOW = datetime(2024, 3, 31, 12)
TODAY = NOW.date()


def days_ago(n: int, hour: int = 12) -> datetime:
    return NOW - timedelta(days=n) + timedelta(hours=hour - 12)


class TestFormulas(unittest.TestCase):
    def test_completion_rate(self) -> None:
        self.assertEqual(50, compliance.completion_rate(2, 2))
        self.assertEqual(0, compliance.completion_rate(0, 0))
        self.assertEqual(67, compliance.completion_rate(2, 1))
        self.assertEqual(100, compliance.completion_rate(5, None))

    def test_mastery_score_and_label(self) -> None:
        self.assertEqual(100, compliance.mastery_score(100, 30, 30, 4, 4))
        self.assertEqual(0, compliance.mastery_score(0, 0, 0, 0, 0))
        # 0.5*80 + 0.3*50 + 0.2*25
        self.assertEqual(60, compliance.mastery_score(80, 15, 30, 1, 4))
        self.assertEqual("Expert", compliance.mastery_label(85))
        self.assertEqual("Proficient", compliance.mastery_label(84))
        self.assertEqual("Developing", compliance.mastery_label(40))
        self.assertEqual("Struggling", compliance.mastery_label(39))

    def test_lag_score_and_label(self) -> None:
        self.assertEqual(0, compliance.lag_score(0, 0, 0, 100))
        self.assertEqual("On Track", compliance.lag_label(0))
        # everything pending and a month late
        self.assertEqual(100, compliance.lag_score(4, 4, 45, 0))
        self.assertEqual("Critical", compliance.lag_label(100))
        self.assertEqual("Slight Lag", compliance.lag_label(30))
        self.assertEqual("Behind", compliance.lag_label(50))
        self.assertEqual("Critical", compliance.lag_label(75))

    def test_trend(self) -> None:
        self.assertEqual("improving", compliance.trend(40, 45))
        self.assertEqual("declining", compliance.trend(60, 50))
        self.assertEqual("flat", compliance.trend(50, 54))

    def test_overdue_is_strictly_before_today(self) -> None:
        self.assertTrue(compliance.is_overdue(task(deadline=TODAY - timedelta(days=1)), TODAY))
        self.assertFalse(compliance.is_overdue(task(deadline=TODAY), TODAY))
        self.assertFalse(compliance.is_overdue(task(deadline=date(2024, 1, 1), done=True), TODAY))
        self.assertFalse(compliance.is_overdue(task(), TODAY))


class TestMasteryReport(unittest.TestCase):
    def test_categories_sorted_by_score(self) -> None:
        tasks = [
            task(main_category="Chess", done=True, priority="high", created_at=days_ago(20), completed_at=days_ago(2)),
            task(main_category="Chess", done=True, priority="high", created_at=days_ago(20), completed_at=days_ago(1)),
            task(main_category="Piano", done=False, created_at=days_ago(3)),
            task(main_category="Piano", done=True, created_at=days_ago(25), completed_at=days_ago(20)),
            # outside the week window
            task(main_category="Piano", done=True, created_at=days_ago(60), completed_at=days_ago(40)),
        ]
        rows = compliance.task_mastery_stats(tasks, "month", NOW)
        self.assertEqual(["Chess", "Piano"], [r["category"] for r in rows])
        chess, piano = rows
        self.assertEqual(100, chess["completion_rate"])
        self.assertEqual(2, chess["active_days"])
        self.assertEqual(2, piano["total"])
        self.assertEqual(50, piano["completion_rate"])
        # first half all done, second half nothing done
        self.assertEqual("declining", piano["trend"])

    def test_uncategorized_fallback(self) -> None:
        rows = compliance.task_mastery_stats([task(created_at=days_ago(1))], "week", NOW)
        self.assertEqual("Uncategorized", rows[0]["category"])
        self.assertEqual("Struggling", rows[0]["mastery_label"])


class TestLagReport(unittest.TestCase):
    def test_no_tasks_is_on_track(self) -> None:
        result = compliance.lag_indicators([], "month", NOW)
        self.assertEqual([], result["lag_categories"])
        self.assertEqual(0, result["overall_lag_score"])
        self.assertEqual("On Track", result["overall_lag_label"])
        self.assertEqual(["high", "medium", "low"], [p["priority"] for p in result["lag_priorities"]])
        self.assertEqual([0, 0, 0], [p["lag_score"] for p in result["lag_priorities"]])

    def test_empty_priority_bucket_has_no_lag(self) -> None:
        tasks = [task(priority="high", created_at=days_ago(3), deadline=TODAY - timedelta(days=1))]
        result = compliance.lag_indicators(tasks, "month", NOW)
        high, medium, low = result["lag_priorities"]
        self.assertGreater(high["lag_score"], 0)
        self.assertEqual(0, medium["lag_score"])
        self.assertEqual(0, low["lag_score"])

    def test_worst_category_first(self) -> None:
        tasks = [
            task(main_category="Study", created_at=days_ago(10), deadline=TODAY - timedelta(days=6), priority="high"),
            task(main_category="Study", created_at=days_ago(10), deadline=TODAY - timedelta(days=2)),
            task(main_category="Gym", done=True, created_at=days_ago(5), completed_at=days_ago(4)),
        ]
        result = compliance.lag_indicators(tasks, "month", NOW)
        study, gym = result["lag_categories"]
        self.assertEqual("Study", study["category"])
        self.assertEqual(2, study["overdue_count"])
        self.assertEqual(4, study["avg_days_overdue"])
        # 0.4*100 + 0.3*(4/30*100) + 0.3*100
        self.assertEqual(74, study["lag_score"])
        self.assertEqual("Behind", study["lag_label"])
        self.assertEqual(0, gym["lag_score"])
        self.assertEqual(4, gym["days_since_last_completion"])
        high = result["lag_priorities"][0]
        self.assertEqual(1, high["overdue_count"])
        self.assertGreater(result["overall_lag_score"], 0)


class TestMissedAnalysis(unittest.TestCase):
    def test_overdue_never_started_and_skipped(self) -> None:
        tasks = [
            task(id="late", deadline=TODAY - timedelta(days=3), priority="high", created_at=days_ago(4)),
            task(id="stale", created_at=days_ago(10)),
            task(id="fresh", created_at=days_ago(2)),
            task(id="worked", created_at=days_ago(10), actual_minutes=15),
            task(id="daily", is_recurring=True, recurring_pattern="daily", created_at=days_ago(1)),
            task(
                id="weekly", is_recurring=True, recurring_pattern="weekly", created_at=days_ago(1),
                recurring_root_id="wroot",
            ),
            task(id="wroot-done", is_recurring=True, recurring_root_id="wroot", done=True, completed_at=days_ago(3)),
        ]
        result = compliance.missed_tasks_analysis(tasks, NOW)
        self.assertEqual(["late"], [r["id"] for r in result["overdue_tasks"]])
        self.assertEqual(3, result["overdue_tasks"][0]["days_overdue"])
        self.assertEqual(["stale"], [r["id"] for r in result["never_started_tasks"]])
        # weekly series completed 3 days ago is inside its 7-day window
        self.assertEqual(["daily"], [r["id"] for r in result["skipped_recurring"]])
        self.assertIsNone(result["skipped_recurring"][0]["last_completed_date"])
        summary = result["summary"]
        self.assertEqual(3, summary["total_missed"])
        self.assertEqual(1, summary["critical_missed"])

    def test_series_last_completed_date_counts_as_completion(self) -> None:
        t = task(
            is_recurring=True, recurring_pattern="custom", recurring_interval=3,
            created_at=days_ago(1), last_completed_date=TODAY - timedelta(days=5),
        )
        skipped = compliance.missed_tasks_analysis([t], NOW)["skipped_recurring"]
        self.assertEqual(1, len(skipped))
        self.assertEqual(5, skipped[0]["days_since_last_completion"])
        self.assertEqual([], compliance.missed_tasks_analysis([t], at(TODAY - timedelta(days=3)))["skipped_recurring"])

    def test_pattern_windows(self) -> None:
        self.assertEqual(1, compliance.pattern_window_days("daily", None))
        self.assertEqual(14, compliance.pattern_window_days("weekly", 2))
        self.assertEqual(30, compliance.pattern_window_days("monthly", 1))
        self.assertEqual(4, compliance.pattern_window_days("custom", 4))
        self.assertEqual(7, compliance.pattern_window_days(None, None))


if __name__ == "__main__":
    unittest.main()
