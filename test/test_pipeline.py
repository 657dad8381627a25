#!/usr/bin/env python3
"""
Test suite for the end-to-end monitor pipeline.
Network calls are replaced by canned responses; the snapshot lives in a temp dir.
"""

import copy
import json
import os
import shutil
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import requests

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from helpers import fake_response, showings_payload
from run_monitor import MonitorPipeline
from showtime_monitor.config import DEFAULT_CONFIG

WEBHOOK_URL = "https://hooks.example/trigger/showtimes"
NOW = datetime(2025, 1, 9, tzinfo=timezone.utc)


def make_config():
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["site"]["base_url"] = "https://cinema.example"
    config["scraping"]["delay_between_requests"] = 0
    config["logging"]["console_level"] = "ERROR"
    return config


class FakeSite:
    """Answers priming, GraphQL and webhook requests"""

    def __init__(self, showings_by_date=None, fail_on_call=None, fail_status=403, webhook_status=200):
        self.showings_by_date = showings_by_date or {}
        self.fail_on_call = fail_on_call
        self.fail_status = fail_status
        self.webhook_status = webhook_status
        self.graphql_calls = 0
        self.webhook_posts = []

    def get(self, url, headers=None, timeout=None):
        return fake_response(200, text="<html></html>", cookies={"sid": "abc"})

    def post(self, url, json=None, headers=None, timeout=None):
        if url == WEBHOOK_URL:
            self.webhook_posts.append(json)
            return fake_response(self.webhook_status, text="ok")

        self.graphql_calls += 1
        if self.fail_on_call == self.graphql_calls:
            return fake_response(self.fail_status, text="Forbidden")
        date = json["variables"]["date"]
        return fake_response(200, showings_payload(*self.showings_by_date.get(date, [])))


class TestMonitorPipeline(unittest.TestCase):
    """Test cases for MonitorPipeline.run"""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.cache_path = Path(self.tmp_dir) / "cache.json"
        self.pipeline = MonitorPipeline(
            config=make_config(),
            cache_path=str(self.cache_path),
            clock=lambda: NOW,
        )
        env = patch.dict(os.environ, {"IFTTT_WEBHOOK_URL": WEBHOOK_URL})
        env.start()
        self.addCleanup(env.stop)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def _run(self, site, **kwargs):
        with patch("showtime_monitor.session_primer.requests.get", side_effect=site.get), \
                patch("requests.post", side_effect=site.post):
            return self.pipeline.run(**kwargs)

    def _write_snapshot(self, data):
        self.cache_path.write_text(json.dumps(data), encoding="utf-8")

    def test_first_run_sends_initial_summary(self):
        site = FakeSite({
            "2025-01-10": [("1", "2025-01-10T10:00:00Z", "Movie A")],
            "2025-01-12": [("2", "2025-01-12T10:00:00Z", "Movie A"), ("3", "2025-01-12T12:00:00Z", "Movie B")],
        })
        self.assertTrue(self._run(site))

        self.assertEqual(site.graphql_calls, 31)
        self.assertEqual(len(site.webhook_posts), 1)
        self.assertEqual(site.webhook_posts[0]["value1"], "Initial check: 2 movies with 3 showtimes found")
        self.assertEqual(site.webhook_posts[0]["value2"], "")
        saved = json.loads(self.cache_path.read_text(encoding="utf-8"))
        self.assertEqual(saved["Movie A"], ["2025-01-10T10:00:00Z", "2025-01-12T10:00:00Z"])

    def test_added_showtime_notified(self):
        self._write_snapshot({"Movie A": ["2025-01-10T10:00:00Z"]})
        site = FakeSite({
            "2025-01-10": [("1", "2025-01-10T10:00:00Z", "Movie A")],
            "2025-01-12": [("2", "2025-01-12T10:00:00Z", "Movie A")],
        })
        self.assertTrue(self._run(site))

        self.assertEqual(len(site.webhook_posts), 1)
        payload = site.webhook_posts[0]
        self.assertEqual(payload["value1"], "SESSIONS ADDED:<br>\nMovie A: January 12 9:00 pm<br>\n")
        self.assertEqual(payload["value2"], "No sessions removed")

    def test_elapsed_showtime_not_notified(self):
        self._write_snapshot({"Movie B": ["2025-01-01T10:00:00Z"]})
        site = FakeSite({})
        self.assertTrue(self._run(site))

        self.assertEqual(site.webhook_posts, [])
        self.assertEqual(json.loads(self.cache_path.read_text(encoding="utf-8")), {})

    def test_forbidden_on_day_five_leaves_snapshot(self):
        snapshot = {"Movie A": ["2025-01-10T10:00:00Z"]}
        self._write_snapshot(snapshot)
        before = self.cache_path.read_bytes()
        site = FakeSite({"2025-01-12": [("2", "2025-01-12T10:00:00Z", "Movie A")]}, fail_on_call=5)

        self.assertFalse(self._run(site))

        self.assertEqual(site.graphql_calls, 5)
        self.assertEqual(site.webhook_posts, [])
        self.assertEqual(self.cache_path.read_bytes(), before)

    def test_forbidden_on_first_run_writes_nothing(self):
        site = FakeSite({}, fail_on_call=1)
        self.assertFalse(self._run(site))
        self.assertFalse(self.cache_path.exists())
        self.assertEqual(site.webhook_posts, [])

    def test_server_error_aborts(self):
        self._write_snapshot({"Movie A": ["2025-01-10T10:00:00Z"]})
        before = self.cache_path.read_bytes()
        site = FakeSite({}, fail_on_call=2, fail_status=500)
        self.assertFalse(self._run(site))
        self.assertEqual(self.cache_path.read_bytes(), before)

    def test_bootstrap_failure_aborts(self):
        site = FakeSite({})
        with patch(
            "showtime_monitor.session_primer.requests.get",
            side_effect=requests.exceptions.ConnectionError("dns"),
        ), patch("requests.post", side_effect=site.post):
            self.assertFalse(self.pipeline.run())
        self.assertEqual(site.graphql_calls, 0)
        self.assertFalse(self.cache_path.exists())

    def test_notification_failure_keeps_new_snapshot(self):
        self._write_snapshot({"Movie A": ["2025-01-10T10:00:00Z"]})
        site = FakeSite({"2025-01-11": [("5", "2025-01-11T10:00:00Z", "Movie C")]}, webhook_status=500)

        self.assertFalse(self._run(site))

        self.assertEqual(len(site.webhook_posts), 1)
        saved = json.loads(self.cache_path.read_text(encoding="utf-8"))
        self.assertEqual(saved, {"Movie C": ["2025-01-11T10:00:00Z"]})

    def test_missing_webhook_url_fails_before_fetch(self):
        site = FakeSite({})
        with patch.dict(os.environ, {"IFTTT_WEBHOOK_URL": ""}):
            self.assertFalse(self._run(site))
        self.assertEqual(site.graphql_calls, 0)
        self.assertFalse(self.cache_path.exists())

    def test_dry_run_changes_nothing(self):
        site = FakeSite({"2025-01-10": [("1", "2025-01-10T10:00:00Z", "Movie A")]})
        self.assertTrue(self._run(site, dry_run=True))
        self.assertEqual(site.webhook_posts, [])
        self.assertFalse(self.cache_path.exists())

    def test_status_log_written(self):
        self.pipeline.config["output"]["logs_dir"] = str(Path(self.tmp_dir) / "logs")
        site = FakeSite({}, fail_on_call=1)
        self._run(site, write_status_log=True)
        status_files = list((Path(self.tmp_dir) / "logs").glob("status_*.log"))
        self.assertEqual(len(status_files), 1)
        self.assertIn("FAILED", status_files[0].read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
