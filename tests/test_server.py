from __future__ import annotations

import io
import json
import unittest
from datetime import datetime, timedelta, timezone
from typing import Any

from letsblog.auth import TokenSigner
from letsblog.config import ServerSecrets
from letsblog.config_schema import AppConfig
from letsblog.event_log import EventLogger
from letsblog.server import create_app
from letsblog.storage import SQLiteBlogRepository

_SECRET = "test-secret-0123456789abcdef-0123456789"


class _Clock:
    def __init__(self) -> None:
        self._now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


class _ServerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = SQLiteBlogRepository.open(":memory:", now_fn=_Clock())
        self.log_stream = io.StringIO()
        self.app = create_app(
            AppConfig(),
            ServerSecrets(jwt_secret=_SECRET),
            repository=self.repo,
            logger=EventLogger(stream=self.log_stream, component="server"),
        )
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        self.repo.close()

    def register(self, username: str, email: str, password: str = "pw") -> dict[str, Any]:
        resp = self.client.post(
            "/api/auth/register",
            json={"username": username, "email": email, "password": password},
        )
        self.assertEqual(resp.status_code, 201, resp.get_json())
        return resp.get_json()

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def create_post(self, token: str, **body: Any) -> dict[str, Any]:
        resp = self.client.post("/api/posts", json=body, headers=self.bearer(token))
        self.assertEqual(resp.status_code, 201, resp.get_json())
        return resp.get_json()


class TestHealthAndAuth(_ServerTestCase):
    def test_health(self) -> None:
        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"status": "ok"})

    def test_register_then_login_never_returns_password(self) -> None:
        reg = self.register("alice", "alice@x.com", "pw1")
        self.assertEqual(reg["user"]["username"], "alice")
        self.assertNotIn("password", reg["user"])
        self.assertTrue(reg["token"])

        resp = self.client.post(
            "/api/auth/login", json={"email": "alice@x.com", "password": "pw1"}
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["user"]["id"], reg["user"]["id"])
        self.assertNotIn("password", body["user"])

        stored = self.repo.find_user_by_email("alice@x.com")
        assert stored is not None
        self.assertNotEqual(stored.password_hash, "pw1")

    def test_login_with_bad_credentials(self) -> None:
        self.register("alice", "alice@x.com", "pw1")
        resp = self.client.post(
            "/api/auth/login", json={"email": "alice@x.com", "password": "wrong"}
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json(), {"message": "Invalid email or password"})

    def test_duplicate_registration_messages(self) -> None:
        self.register("alice", "alice@x.com")

        resp = self.client.post(
            "/api/auth/register",
            json={"username": "alice", "email": "alice@x.com", "password": "pw"},
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["message"], "Email already in use")

        resp = self.client.post(
            "/api/auth/register",
            json={"username": "alice", "email": "other@x.com", "password": "pw"},
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["message"], "Username already taken")

    def test_register_requires_fields(self) -> None:
        resp = self.client.post("/api/auth/register", json={"username": "alice"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("message", resp.get_json())

    def test_protected_route_token_checks(self) -> None:
        resp = self.client.post("/api/posts", json={"title": "x"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()["message"], "Authentication required")

        resp = self.client.post("/api/posts", json={"title": "x"}, headers=self.bearer("garbage"))
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()["message"], "Invalid token")

        ghost = TokenSigner(_SECRET).issue("no-such-user")
        resp = self.client.post("/api/posts", json={"title": "x"}, headers=self.bearer(ghost))
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()["message"], "User not found")

    def test_update_profile(self) -> None:
        reg = self.register("alice", "alice@x.com")
        resp = self.client.put(
            "/api/users/profile",
            json={"bio": "hello", "avatar": "https://img/a.png", "username": "ignored"},
            headers=self.bearer(reg["token"]),
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["bio"], "hello")
        self.assertEqual(body["avatar"], "https://img/a.png")
        self.assertEqual(body["username"], "alice")


class TestPostRoutes(_ServerTestCase):
    def test_create_derives_excerpt_and_lists_newest_first(self) -> None:
        token = self.register("alice", "alice@x.com")["token"]
        first = self.create_post(token, title="Hi", content="A" * 200, tags=["intro"])
        second = self.create_post(token, title="", content="short", excerpt="custom")

        self.assertEqual(first["excerpt"], "A" * 150)
        self.assertEqual(first["author"]["username"], "alice")
        self.assertEqual(first["likes"], 0)
        self.assertEqual(first["comments"], [])
        self.assertIn("createdAt", first)
        self.assertEqual(second["title"], "Untitled")
        self.assertEqual(second["excerpt"], "custom")

        listed = self.client.get("/api/posts").get_json()
        self.assertEqual([p["id"] for p in listed], [second["id"], first["id"]])

    def test_only_author_may_update_or_delete(self) -> None:
        alice = self.register("alice", "alice@x.com")["token"]
        bob = self.register("bob", "bob@x.com")["token"]
        post = self.create_post(alice, title="Hi", content="A" * 200)

        resp = self.client.put(
            f"/api/posts/{post['id']}", json={"title": "hijack"}, headers=self.bearer(bob)
        )
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.get_json()["message"], "Not authorized to update this post")

        resp = self.client.delete(f"/api/posts/{post['id']}", headers=self.bearer(bob))
        self.assertEqual(resp.status_code, 403)

        resp = self.client.put(
            f"/api/posts/{post['id']}",
            json={"title": "Hello", "content": "new body"},
            headers=self.bearer(alice),
        )
        self.assertEqual(resp.status_code, 200)
        updated = resp.get_json()
        self.assertEqual(updated["title"], "Hello")
        self.assertEqual(updated["content"], "new body")
        self.assertNotEqual(updated["updatedAt"], post["updatedAt"])

    def test_ownership_is_checked_before_body(self) -> None:
        alice = self.register("alice", "alice@x.com")["token"]
        bob = self.register("bob", "bob@x.com")["token"]
        post = self.create_post(alice, title="Hi", content="x")

        resp = self.client.put(
            f"/api/posts/{post['id']}", json={"title": 123}, headers=self.bearer(bob)
        )
        self.assertEqual(resp.status_code, 403)

        resp = self.client.put("/api/posts/nope", json={"title": 123}, headers=self.bearer(bob))
        self.assertEqual(resp.status_code, 404)

        resp = self.client.put(
            f"/api/posts/{post['id']}", json={"title": 123}, headers=self.bearer(alice)
        )
        self.assertEqual(resp.status_code, 400)

    def test_delete_then_not_found(self) -> None:
        token = self.register("alice", "alice@x.com")["token"]
        post = self.create_post(token, title="Hi", content="x")

        resp = self.client.delete(f"/api/posts/{post['id']}", headers=self.bearer(token))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"message": "Post deleted successfully"})

        self.assertEqual(self.client.get("/api/posts").get_json(), [])
        resp = self.client.get(f"/api/posts/{post['id']}")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json(), {"message": "Post not found"})

        resp = self.client.put(
            f"/api/posts/{post['id']}", json={"title": "x"}, headers=self.bearer(token)
        )
        self.assertEqual(resp.status_code, 404)

    def test_comments_and_likes(self) -> None:
        alice = self.register("alice", "alice@x.com")["token"]
        bob = self.register("bob", "bob@x.com")["token"]
        post = self.create_post(alice, title="Hi", content="x")

        resp = self.client.post(
            f"/api/posts/{post['id']}/comments", json={"content": "nice"}, headers=self.bearer(bob)
        )
        self.assertEqual(resp.status_code, 201)
        comment = resp.get_json()
        self.assertEqual(comment["author"]["username"], "bob")

        resp = self.client.post(
            f"/api/posts/{post['id']}/comments", json={"content": " "}, headers=self.bearer(bob)
        )
        self.assertEqual(resp.status_code, 400)

        for expected in (1, 2):
            resp = self.client.post(f"/api/posts/{post['id']}/like", headers=self.bearer(bob))
            self.assertEqual(resp.get_json(), {"likes": expected})

        fetched = self.client.get(f"/api/posts/{post['id']}").get_json()
        self.assertEqual(fetched["likes"], 2)
        self.assertEqual([c["id"] for c in fetched["comments"]], [comment["id"]])

        resp = self.client.post("/api/posts/missing/like", headers=self.bearer(bob))
        self.assertEqual(resp.status_code, 404)

    def test_unknown_route_returns_json_message(self) -> None:
        resp = self.client.get("/api/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertIn("message", resp.get_json())

    def test_requests_are_logged(self) -> None:
        self.client.get("/api/health")
        records = [json.loads(line) for line in self.log_stream.getvalue().splitlines()]
        completed = [r for r in records if r["event"] == "request_completed"]
        self.assertEqual(completed[-1]["data"]["path"], "/api/health")
        self.assertEqual(completed[-1]["data"]["status"], 200)
        self.assertIn("request_id", completed[-1])


if __name__ == "__main__":
    unittest.main()
