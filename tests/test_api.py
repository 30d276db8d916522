from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from habitlens.config import settings
from habitlens.deps import get_db
from habitlens.main import app
from tests.helpers import memory_sessionmaker


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        Session = memory_sessionmaker()

        def override_get_db():
            db = Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)
        self.headers = {"X-API-Key": settings.api_key}

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def post(self, url: str, **kwargs):
        return self.client.post(url, headers=self.headers, **kwargs)

    def get(self, url: str, **kwargs):
        return self.client.get(url, headers=self.headers, **kwargs)


class TestAuth(ApiTestCase):
    def test_health_is_open(self) -> None:
        self.assertEqual({"ok": True}, self.client.get("/health").json())

    def test_api_key_required(self) -> None:
        self.assertEqual(401, self.client.get("/tasks").status_code)
        self.assertEqual(401, self.client.get("/tasks", headers={"X-API-Key": "nope"}).status_code)


class TestRecurringFlow(ApiTestCase):
    def create_daily(self) -> str:
        r = self.post("/tasks", json={
            "text": "Read 20 pages",
            "is_recurring": True,
            "recurring_pattern": "daily",
            "recurring_start_date": "2024-01-01",
            "main_category": "Reading",
        })
        self.assertEqual(200, r.status_code, r.text)
        return r.json()["task_id"]

    def test_complete_check_and_history(self) -> None:
        root = self.create_daily()
        r = self.post(f"/tasks/{root}/complete", json={"completed_on": "2024-01-03", "actual_minutes": 25})
        self.assertEqual(200, r.status_code, r.text)
        body = r.json()
        self.assertEqual("created", body["series"]["outcome"])
        self.assertEqual("2024-01-03", body["series"]["date"])

        tasks = self.get("/tasks", params={"done": False}).json()
        self.assertEqual(1, len(tasks))
        self.assertEqual(body["next_task_id"], tasks[0]["id"])
        self.assertEqual("2024-01-04", tasks[0]["deadline"])
        self.assertEqual(root, tasks[0]["recurring_root_id"])

        self.assertEqual(409, self.post(f"/tasks/{root}/complete").status_code)

        r = self.post("/recurring/check-missed", params={"as_of": "2024-01-05"})
        self.assertEqual({"processed": 1, "total_new_misses": 3, "errors": []}, r.json())

        history = self.get(f"/recurring/{root}/history").json()
        self.assertEqual(
            ["missed", "missed", "completed", "missed"],
            [e["status"] for e in history["history"]],
        )
        self.assertEqual("2024-01-05", history["last_checked_date"])

        r = self.post(f"/recurring/{root}/complete", json={"date": "2024-01-02", "count": 20})
        self.assertEqual("corrected", r.json()["outcome"])
        # Jan 2 and 3 completed, Jan 4 still missed
        self.assertEqual(2, r.json()["longest_streak"])
        self.assertEqual(0, r.json()["current_streak"])

        stats = self.get("/recurring/stats").json()
        self.assertEqual([root], [s["recurring_root_id"] for s in stats])
        self.assertEqual(50, stats[0]["completion_rate"])

    def test_rejected_completion_leaves_task_open(self) -> None:
        r = self.post("/tasks", json={
            "text": "Stretch", "is_recurring": True, "recurring_pattern": "daily", "deadline": "2099-01-01",
        })
        task_id = r.json()["task_id"]

        r = self.post(f"/tasks/{task_id}/complete", json={"completed_on": "2024-01-01"})
        self.assertEqual(422, r.status_code)
        self.assertIn("before the start of series", r.json()["detail"])

        open_tasks = self.get("/tasks", params={"done": False}).json()
        self.assertEqual([task_id], [t["id"] for t in open_tasks])
        self.assertIsNone(open_tasks[0]["completed_at"])
        self.assertEqual(404, self.get(f"/recurring/{task_id}/history").status_code)

        r = self.post(f"/tasks/{task_id}/complete", json={"completed_on": "2099-01-01"})
        self.assertEqual(200, r.status_code, r.text)
        self.assertEqual("created", r.json()["series"]["outcome"])

    def test_missed_log_routes(self) -> None:
        root = self.create_daily()
        self.post(f"/tasks/{root}/complete", json={"completed_on": "2024-01-02"})
        self.post("/recurring/check-missed", params={"as_of": "2024-01-05"})

        logs = self.get(f"/recurring/{root}/missed", params={"limit": 2}).json()
        self.assertEqual(["2024-01-04", "2024-01-03"], [e["date"] for e in logs])
        logs = self.get("/recurring/missed", params={"end": "2024-01-01"}).json()
        self.assertEqual([("2024-01-01", "Read 20 pages")], [(e["date"], e["task_text"]) for e in logs])
        self.assertEqual(404, self.get("/recurring/missing/missed").status_code)

    def test_completion_before_series_start(self) -> None:
        root = self.create_daily()
        self.post(f"/tasks/{root}/complete", json={"completed_on": "2024-01-01"})
        r = self.post(f"/recurring/{root}/complete", json={"date": "2023-12-01"})
        self.assertEqual(422, r.status_code)
        self.assertEqual(404, self.get("/recurring/missing/history").status_code)


class TestGoalsAndAnalytics(ApiTestCase):
    def test_goal_lifecycle(self) -> None:
        bad = self.post("/goals", json={
            "title": "x", "type": "daily", "target_type": "tasks_completed",
            "target_value": 0, "start_date": "2024-01-01", "end_date": "2024-01-01",
        })
        self.assertEqual(422, bad.status_code)

        r = self.post("/goals", json={
            "title": "Ship", "type": "weekly", "target_type": "tasks_completed",
            "target_value": 2, "start_date": "2024-01-01", "end_date": "2024-01-07",
        })
        goal_id = r.json()["goal_id"]
        self.assertEqual(["Ship"], [g["title"] for g in self.get("/goals").json()])
        progress = self.get(f"/goals/{goal_id}/progress").json()
        self.assertEqual(0, progress["current_progress"])
        self.assertTrue(progress["is_overdue"])
        self.assertEqual(404, self.get("/goals/nope/progress").status_code)

    def test_analytics_endpoints(self) -> None:
        self.post("/tasks", json={"text": "Do 10 pushups", "priority": "high", "deadline": "2024-01-01"})
        missed = self.get("/analytics/missed").json()
        self.assertEqual(1, missed["summary"]["overdue_count"])
        self.assertEqual(1, missed["summary"]["critical_missed"])

        lag = self.get("/analytics/lag", params={"period": "week"}).json()
        self.assertEqual(1, len(lag["lag_categories"]))
        self.assertEqual(422, self.get("/analytics/lag", params={"period": "decade"}).status_code)

        self.assertEqual(200, self.get("/analytics/mastery").status_code)
        self.assertEqual(
            422,
            self.get("/analytics/productivity", params={"start": "2024-02-01", "end": "2024-01-01"}).status_code,
        )
        self.assertEqual(1, self.get("/analytics/productivity").json()["total_todos"])
        insights = self.get("/analytics/insights").json()
        self.assertEqual(["Start completing tasks to see productivity insights!"], insights["insights"])

    def test_daily_and_category_routes(self) -> None:
        for body in (
            {"text": "Tactics drill", "main_category": "Chess", "subcategory": "Tactics"},
            {"text": "Leg day", "category": "Gym"},
        ):
            task_id = self.post("/tasks", json=body).json()["task_id"]
            self.post(f"/tasks/{task_id}/complete", json={"actual_minutes": 30})

        daily = self.get("/analytics/daily", params={"days": 7}).json()
        self.assertEqual(7, len(daily))
        self.assertEqual(2, daily[-1]["completed"])
        self.assertEqual(60, daily[-1]["time_spent"])

        rows = self.get("/analytics/categories", params={"category": ["Chess"]}).json()
        self.assertEqual({"main:Chess", "sub:Chess:Tactics"}, {r["id"] for r in rows})

        stats = self.get("/analytics/categories/stats", params={"period": "week"}).json()
        self.assertEqual(3, stats["totals"]["completed"])
        self.assertEqual(["Chess › Tactics"], [r["name"] for r in stats["subcategories"]])

    def test_metric_extraction(self) -> None:
        r = self.post("/metrics/extract", params={"category": "exercise"}, json={"text": "solve 5 chess puzzles"})
        body = r.json()
        self.assertEqual("chess", body["activity_category"])
        self.assertEqual("5 puzzles", body["summary"])
        self.assertEqual(1, len(body["validation"]["warnings"]))


if __name__ == "__main__":
    unittest.main()
