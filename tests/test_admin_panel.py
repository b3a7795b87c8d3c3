"""Tests for the admin panel HTTP surface."""

import json
import os
import sys
import tempfile
import unittest
from dataclasses import replace
from urllib.parse import parse_qs, urlencode, urlsplit

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from conftest import BASE_CONFIG, SECRET, make_contest, make_participant  # noqa: E402
from core.constants import ContestStatus  # noqa: E402
from database.repository import ContestRepository  # noqa: E402
from web.app import create_app  # noqa: E402
from web.signing import build_signature, now_ms  # noqa: E402


def signed_query(user_id="1", **extra):
    ts = str(now_ms())
    params = {"uid": user_id, "ts": ts, "sig": build_signature(user_id, ts, SECRET)}
    params.update(extra)
    return urlencode(params)


class AdminPanelTestCase(unittest.TestCase):
    """Test case for admin panel functionality."""

    def setUp(self):
        """Set up test environment."""
        self.tmp = tempfile.TemporaryDirectory()
        self.config = replace(
            BASE_CONFIG,
            storage_path=os.path.join(self.tmp.name, "contests.json"),
            admin_panel_max_body_bytes=1024,
        )
        self.repository = ContestRepository(self.config.storage_path)
        self.repository.create(make_contest("c1", title="Summer", participants=[make_participant("u1")]))
        self.app = create_app(self.config, repository=self.repository, testing=True)
        self.client = self.app.test_client()

    def tearDown(self):
        """Tear down test environment."""
        self.repository.close()
        self.tmp.cleanup()

    def test_health_is_public(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, b"ok")
        self.assertEqual(response.headers["X-Store-Backend"], "JsonContestStorage")

    def test_dashboard_requires_signature(self):
        response = self.client.get("/adminpanel")
        self.assertEqual(response.status_code, 401)

    def test_dashboard_renders_contests(self):
        response = self.client.get("/adminpanel?" + signed_query())
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"Contest Admin", response.data)
        self.assertIn(b"Summer", response.data)
        self.assertEqual(response.headers["Referrer-Policy"], "no-referrer")
        self.assertEqual(response.headers["X-Frame-Options"], "DENY")

    def test_unknown_admin_path_is_404(self):
        response = self.client.get("/adminpanel/unknown?" + signed_query())
        self.assertEqual(response.status_code, 404)

    def test_regular_user_is_forbidden(self):
        response = self.client.get("/adminpanel?" + signed_query(user_id="99"))
        self.assertEqual(response.status_code, 403)

    def test_get_on_action_is_405(self):
        response = self.client.get("/adminpanel/action?" + signed_query())
        self.assertEqual(response.status_code, 405)

    def test_action_redirects_with_message(self):
        response = self.client.post(
            "/adminpanel/action?" + signed_query(user_id="3", q="sum"),
            data={"action": "draw", "contestId": "c1"},
        )
        self.assertEqual(response.status_code, 302)
        location = urlsplit(response.headers["Location"])
        query = parse_qs(location.query)
        self.assertEqual(location.path, "/adminpanel")
        self.assertEqual(query["uid"], ["3"])
        self.assertEqual(query["q"], ["sum"])
        self.assertIn("Draw выполнен", query["m"][0])
        self.assertEqual(self.repository.get("c1").status, ContestStatus.COMPLETED)

    def test_moderator_cannot_create(self):
        response = self.client.post(
            "/adminpanel/action?" + signed_query(user_id="3"),
            data={"action": "create", "title": "x", "endsAt": "2099-01-01T00:00"},
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(len(self.repository.list()), 1)

    def test_admin_creates_contest(self):
        response = self.client.post(
            "/adminpanel/action?" + signed_query(user_id="2"),
            data={"action": "create", "title": "Winter", "endsAt": "2099-01-01T00:00", "maxWinners": "3"},
        )
        self.assertEqual(response.status_code, 302)
        created = [contest for contest in self.repository.list() if contest.title == "Winter"]
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0].max_winners, 3)

    def test_oversized_body_is_413(self):
        response = self.client.post(
            "/adminpanel/action?" + signed_query(),
            data={"action": "create", "title": "x" * 4096},
        )
        self.assertEqual(response.status_code, 413)

    def test_bulk_action(self):
        self.repository.create(make_contest("c2"))
        response = self.client.post(
            "/adminpanel/action?" + signed_query(),
            data={"action": "bulk_close", "contestIds": ["c1", "c2"]},
        )
        self.assertEqual(response.status_code, 302)
        statuses = {contest.id: contest.status for contest in self.repository.list()}
        self.assertEqual(statuses, {"c1": ContestStatus.COMPLETED, "c2": ContestStatus.COMPLETED})

    def test_export_csv(self):
        response = self.client.get("/adminpanel/export?" + signed_query())
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.mimetype == "text/csv")
        self.assertIn("attachment", response.headers["Content-Disposition"])
        self.assertIn(b'"Summer"', response.data)

    def test_json_reports(self):
        for path in ("/adminpanel/audit", "/adminpanel/metrics", "/adminpanel/alerts"):
            response = self.client.get(f"{path}?" + signed_query(status="active"))
            self.assertEqual(response.status_code, 200, path)
            body = json.loads(response.data)
            self.assertEqual(body["filters"], {"query": "", "status": "active"})

    def test_metrics_csv_and_prometheus(self):
        csv_response = self.client.get("/adminpanel/metrics.csv?" + signed_query())
        self.assertEqual(csv_response.status_code, 200)
        self.assertTrue(csv_response.data.startswith(b"metric,value"))

        prom = self.client.get("/adminpanel/prometheus?" + signed_query())
        self.assertEqual(prom.status_code, 200)
        self.assertIn(b"admin_panel_request_latency_seconds", prom.data)


class AdminPanelRateLimitTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        config = replace(
            BASE_CONFIG,
            storage_path=os.path.join(self.tmp.name, "contests.db"),
            admin_panel_rate_limit_max=1,
        )
        self.app = create_app(config, testing=True)
        self.repository = self.app.extensions["giveaway"]["repository"]
        self.client = self.app.test_client()

    def tearDown(self):
        self.repository.close()
        self.tmp.cleanup()

    def test_second_request_is_limited(self):
        self.assertEqual(self.client.get("/adminpanel?" + signed_query()).status_code, 200)
        response = self.client.get("/adminpanel?" + signed_query())
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.headers["Retry-After"], "60")


if __name__ == "__main__":
    unittest.main()
