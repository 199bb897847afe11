from __future__ import annotations

import unittest

from letsblog.errors import AuthenticationError
from letsblog.models import AuthResult, User
from letsblog.session import Session

_ALICE = User(id="u1", username="alice", email="alice@x.com")


class TestSession(unittest.TestCase):
    def test_begin_and_end(self) -> None:
        session = Session()
        self.assertFalse(session.is_authenticated)
        with self.assertRaises(AuthenticationError) as ctx:
            session.require_token("create a post")
        self.assertEqual(str(ctx.exception), "You must be logged in to create a post")

        session.begin(AuthResult(user=_ALICE, token=" tok "))
        self.assertEqual(session.require_token("x"), "tok")
        self.assertEqual(session.user, _ALICE)

        session.end()
        self.assertIsNone(session.token)
        self.assertIsNone(session.user)

    def test_update_user_ignored_without_token(self) -> None:
        session = Session()
        session.update_user(_ALICE)
        self.assertIsNone(session.user)

        session.resume("tok")
        session.update_user(_ALICE)
        self.assertEqual(session.user, _ALICE)

    def test_empty_tokens_rejected(self) -> None:
        session = Session()
        with self.assertRaises(AuthenticationError):
            session.begin(AuthResult(user=_ALICE, token="  "))
        with self.assertRaises(ValueError):
            session.resume("")


if __name__ == "__main__":
    unittest.main()
