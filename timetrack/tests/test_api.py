from __future__ import annotations

import unittest

from timetrack.clock import FakeClock
from timetrack.tests.test_helpers import START, local_tmp_dir


class TestAPI(unittest.TestCase):
    def setUp(self) -> None:
        try:
            from fastapi.testclient import TestClient  # noqa: F401
            from timetrack.api.app import create_app  # noqa: F401
        except Exception as exc:  # pragma: no cover
            self.skipTest(f"fastapi test client unavailable: {exc}")

    def test_health_meta_and_openapi(self) -> None:
        from fastapi.testclient import TestClient

        from timetrack.api.app import create_app

        with local_tmp_dir() as tmp:
            db_path = tmp / "data" / "timetrack.sqlite"
            with TestClient(create_app(db_path=db_path)) as client:
                health = client.get("/api/v1/health")
                self.assertEqual(health.status_code, 200)
                self.assertEqual(health.json().get("status"), "ok")

                meta = client.get("/api/v1/meta")
                self.assertEqual(meta.status_code, 200)
                self.assertEqual(meta.json().get("db_path"), str(db_path))
                self.assertEqual(meta.json().get("open_status"), "created")
                self.assertFalse(meta.json().get("recreated"))

                paths = client.get("/openapi.json").json().get("paths", {})
                for path in ("/api/v1/tasks", "/api/v1/timer/reset", "/api/v1/summary"):
                    self.assertIn(path, paths)

    def test_tasks_and_categories(self) -> None:
        from fastapi.testclient import TestClient

        from timetrack.api.app import create_app

        with local_tmp_dir() as tmp:
            app = create_app(db_path=tmp / "timetrack.sqlite", clock=FakeClock(start=START))
            with TestClient(app) as client:
                created = client.post("/api/v1/tasks", json={"name": "Write report", "tags": ["Docs"]})
                self.assertEqual(created.status_code, 201)
                task = created.json()
                self.assertEqual(task["tags"], ["docs"])

                duplicate = client.post("/api/v1/tasks", json={"name": "Write report"})
                self.assertEqual(duplicate.status_code, 409)
                self.assertEqual(duplicate.json()["error"], "DuplicateName")
                self.assertEqual(duplicate.json()["kind"], "constraint")

                self.assertEqual(client.post("/api/v1/tasks", json={"name": "ab"}).status_code, 422)
                self.assertEqual(client.get("/api/v1/tasks/999").status_code, 404)

                category = client.post("/api/v1/categories", json={"name": "Work", "color": "#ff5733"})
                self.assertEqual(category.status_code, 201)
                self.assertEqual(category.json()["color"], "#FF5733")

                assigned = client.put(
                    f"/api/v1/tasks/{task['id']}/category",
                    json={"category_id": category.json()["id"]},
                )
                self.assertEqual(assigned.json()["category_name"], "Work")

                tagged = client.put(f"/api/v1/tasks/{task['id']}/tags", json={"tags": ["b", "a"]})
                self.assertEqual(tagged.json()["tags"], ["a", "b"])

                done = client.put(f"/api/v1/tasks/{task['id']}/complete", json={"is_complete": True})
                self.assertTrue(done.json()["is_complete"])
                self.assertEqual(len(client.get("/api/v1/tasks", params={"is_complete": True}).json()), 1)
                self.assertEqual(client.get("/api/v1/tasks", params={"is_complete": False}).json(), [])

                self.assertEqual(client.delete(f"/api/v1/categories/{category.json()['id']}").status_code, 204)
                self.assertIsNone(client.get(f"/api/v1/tasks/{task['id']}").json()["category_id"])

                self.assertEqual(client.delete(f"/api/v1/tasks/{task['id']}").status_code, 204)
                self.assertEqual(client.get(f"/api/v1/tasks/{task['id']}").status_code, 404)
                self.assertEqual(client.delete(f"/api/v1/tasks/{task['id']}").status_code, 404)

    def test_timer_flow_and_sessions(self) -> None:
        from fastapi.testclient import TestClient

        from timetrack.api.app import create_app

        clock = FakeClock(start=START)
        with local_tmp_dir() as tmp:
            with TestClient(create_app(db_path=tmp / "timetrack.sqlite", clock=clock)) as client:
                task_id = client.post("/api/v1/tasks", json={"name": "Write report"}).json()["id"]

                self.assertEqual(client.post("/api/v1/timer/start", json={}).status_code, 409)
                self.assertEqual(client.post("/api/v1/timer/pause").status_code, 409)

                started = client.post("/api/v1/timer/start", json={"task_id": task_id, "notes": "outline"})
                self.assertEqual(started.status_code, 200)
                self.assertEqual(started.json()["state"], "Running")
                again = client.post("/api/v1/timer/start", json={"task_id": task_id})
                self.assertEqual(again.status_code, 409)
                self.assertEqual(again.json()["error"], "SessionAlreadyActive")

                clock.advance(10)
                self.assertEqual(client.post("/api/v1/timer/pause").json()["state"], "Paused")
                clock.advance(5)
                self.assertEqual(client.post("/api/v1/timer/resume").json()["state"], "Running")
                clock.advance(20)
                stopped = client.post("/api/v1/timer/stop", json={"notes": ""})
                self.assertEqual(stopped.status_code, 200)
                self.assertEqual(stopped.json()["duration_sec"], 35)
                self.assertEqual(stopped.json()["notes"], "outline")

                state = client.get("/api/v1/timer/state").json()
                self.assertEqual(state["state"], "Stopped")
                self.assertEqual(state["elapsed_seconds"], 30)

                listed = client.get("/api/v1/sessions", params={"task_id": task_id}).json()
                self.assertEqual(len(listed), 1)
                detail = client.get(f"/api/v1/sessions/{listed[0]['id']}")
                self.assertEqual(detail.json()["state"], "Stopped")
                self.assertEqual(client.get("/api/v1/sessions/999").status_code, 404)

                summary = client.get("/api/v1/summary").json()
                self.assertEqual(summary[0]["task_name"], "Write report")
                self.assertEqual(summary[0]["total_seconds"], 35)

                self.assertEqual(client.post("/api/v1/timer/reset").json()["elapsed_seconds"], 0)

    def test_deleting_timed_task_and_admin_reset(self) -> None:
        from fastapi.testclient import TestClient

        from timetrack.api.app import create_app

        with local_tmp_dir() as tmp:
            with TestClient(create_app(db_path=tmp / "timetrack.sqlite", clock=FakeClock(start=START))) as client:
                doomed = client.post("/api/v1/tasks", json={"name": "Doomed task"}).json()["id"]
                other = client.post("/api/v1/tasks", json={"name": "Next task"}).json()["id"]
                client.post("/api/v1/timer/start", json={"task_id": doomed})

                self.assertEqual(client.delete(f"/api/v1/tasks/{doomed}").status_code, 204)
                self.assertEqual(client.get("/api/v1/timer/state").json()["state"], "Stopped")
                started = client.post("/api/v1/timer/start", json={"task_id": other})
                self.assertEqual(started.status_code, 200)

                refused = client.post("/api/v1/admin/reset", json={})
                self.assertEqual(refused.status_code, 422)
                self.assertEqual(len(client.get("/api/v1/tasks").json()), 1)

                reset = client.post("/api/v1/admin/reset", json={"confirm": True})
                self.assertEqual(reset.status_code, 200)
                self.assertEqual(reset.json()["open_status"], "database_recreated")
                self.assertEqual(client.get("/api/v1/tasks").json(), [])
                self.assertEqual(client.get("/api/v1/timer/state").json()["state"], "Stopped")
                self.assertTrue(client.get("/api/v1/meta").json()["recreated"])


if __name__ == "__main__":
    unittest.main()
