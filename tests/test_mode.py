from __future__ import annotations

import io
import json
import unittest
from typing import Any
from unittest import mock

import requests

from letsblog.config_schema import AppConfig
from letsblog.event_log import EventLogger
from letsblog.local_state import SQLiteKeyValueStore
from letsblog.local_store import LocalBlogStore
from letsblog.mode import probe_backend, select_backend
from letsblog.remote import RemoteBlogClient


class _FakeResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code

    def json(self) -> Any:
        return {"status": "ok"}


class _FakeHttp:
    def __init__(self, outcome: Any) -> None:
        self._outcome = outcome
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome


class TestProbe(unittest.TestCase):
    def test_success_status_is_reachable(self) -> None:
        http = _FakeHttp(_FakeResponse(200))
        result = probe_backend("http://api.test/api", http=http, timeout=2.0)

        self.assertTrue(result.reachable)
        self.assertEqual(http.calls[0]["method"], "GET")
        self.assertEqual(http.calls[0]["url"], "http://api.test/api/health")
        self.assertEqual(http.calls[0]["timeout"], 2.0)

    def test_failures_are_all_unreachable(self) -> None:
        outcomes = [
            _FakeResponse(500),
            _FakeResponse(404),
            requests.ConnectionError("refused"),
            requests.Timeout("slow"),
        ]
        for outcome in outcomes:
            with self.subTest(outcome=repr(outcome)):
                http = _FakeHttp(outcome)
                result = probe_backend("http://api.test/api", http=http)
                self.assertFalse(result.reachable)
                self.assertEqual(len(http.calls), 1)


class TestSelectBackend(unittest.TestCase):
    def test_reachable_backend_selects_remote(self) -> None:
        http = _FakeHttp(_FakeResponse(200))
        selection = select_backend(AppConfig(), http=http)

        self.assertEqual(selection.mode, "remote")
        self.assertIsInstance(selection.backend, RemoteBlogClient)

    def test_unreachable_backend_selects_local_and_logs(self) -> None:
        http = _FakeHttp(requests.ConnectionError("refused"))
        stream = io.StringIO()
        logger = EventLogger(stream=stream, component="client")

        with SQLiteKeyValueStore.open(":memory:") as kv:
            selection = select_backend(AppConfig(), http=http, kv_store=kv, logger=logger)

            self.assertEqual(selection.mode, "local")
            self.assertIsInstance(selection.backend, LocalBlogStore)

            # The decision holds: later calls never re-probe.
            selection.backend.get_posts()
            selection.backend.register("alice", "alice@x.com", "pw1")
            self.assertEqual(len(http.calls), 1)

        record = json.loads(stream.getvalue().splitlines()[0])
        self.assertEqual(record["event"], "backend_selected")
        self.assertEqual(record["level"], "WARN")
        self.assertEqual(record["data"]["mode"], "local")


class TestOwnedHttpSession(unittest.TestCase):
    def test_probe_closes_session_it_created(self) -> None:
        with mock.patch("letsblog.mode.requests.Session") as session_cls:
            session_cls.return_value.request.return_value = _FakeResponse(200)
            result = probe_backend("http://api.test/api")

        self.assertTrue(result.reachable)
        session_cls.return_value.close.assert_called_once_with()

    def test_local_selection_closes_session_it_created(self) -> None:
        with mock.patch("letsblog.mode.requests.Session") as session_cls:
            session_cls.return_value.request.side_effect = requests.ConnectionError("refused")
            with SQLiteKeyValueStore.open(":memory:") as kv:
                selection = select_backend(AppConfig(), kv_store=kv)

        self.assertEqual(selection.mode, "local")
        session_cls.return_value.close.assert_called_once_with()

    def test_remote_selection_keeps_session_open(self) -> None:
        with mock.patch("letsblog.mode.requests.Session") as session_cls:
            session_cls.return_value.request.return_value = _FakeResponse(200)
            selection = select_backend(AppConfig())

        self.assertEqual(selection.mode, "remote")
        session_cls.return_value.close.assert_not_called()


if __name__ == "__main__":
    unittest.main()
