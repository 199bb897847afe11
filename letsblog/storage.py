from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Mapping

from .errors import NotFoundError, StorageError, ValidationError
from .models import AuthorSnapshot, Comment, Post, User
from .storage_schema import SERVER_MIGRATIONS, initialize_sqlite


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _load_tags(raw: str | None) -> list[str]:
    try:
        tags = json.loads(raw or "[]")
    except ValueError:
        return []
    if not isinstance(tags, list):
        return []
    return [str(t) for t in tags]


@dataclass(frozen=True)
class UserRecord:
    user: User
    password_hash: str


_POST_SELECT = """
SELECT
  p.id, p.title, p.content, p.excerpt, p.cover_image, p.tags_json, p.likes,
  p.created_at, p.updated_at,
  u.id AS author_id, u.username AS author_username, u.avatar AS author_avatar
FROM posts p
JOIN users u ON u.id = p.author_id
""".strip()

_COMMENT_SELECT = """
SELECT
  c.id, c.post_id, c.content, c.created_at,
  u.id AS author_id, u.username AS author_username, u.avatar AS author_avatar
FROM comments c
JOIN users u ON u.id = c.author_id
""".strip()


class SQLiteBlogRepository:
    """
    Server-side persistence for users, posts and comments.

    Author snapshots are joined from `users` at read time, so they follow later
    profile edits. Each write is atomic on its own; nothing spans requests.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._lock = Lock()
        self._now_fn = now_fn or _utc_now

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        now_fn: Callable[[], datetime] | None = None,
    ) -> "SQLiteBlogRepository":
        db_path = str(path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            # Shared by Flask worker threads; access is serialized by self._lock.
            conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to open sqlite database: {db_path}: {e}") from e

        try:
            initialize_sqlite(conn, SERVER_MIGRATIONS)
        except Exception as e:
            conn.close()
            raise StorageError(f"Failed to initialize sqlite schema: {e}") from e

        return cls(conn, now_fn=now_fn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteBlogRepository":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _now_iso(self) -> str:
        return self._now_fn().isoformat()

    def _write(self, sql: str, params: tuple[Any, ...], *, what: str) -> int:
        try:
            with self._conn:
                cur = self._conn.execute(sql, params)
                return int(cur.rowcount)
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to {what}: {e}") from e

    # users

    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> UserRecord:
        return UserRecord(
            user=User(
                id=str(row["id"]),
                username=str(row["username"]),
                email=str(row["email"]),
                bio=str(row["bio"] or ""),
                avatar=str(row["avatar"] or ""),
            ),
            password_hash=str(row["password_hash"]),
        )

    def _find_user(self, column: str, value: str) -> UserRecord | None:
        row = self._conn.execute(
            f"SELECT id, username, email, password_hash, bio, avatar FROM users WHERE {column} = ?",
            (value,),
        ).fetchone()
        return self._user_from_row(row) if row is not None else None

    def get_user(self, user_id: str) -> UserRecord | None:
        with self._lock:
            return self._find_user("id", user_id)

    def find_user_by_email(self, email: str) -> UserRecord | None:
        with self._lock:
            return self._find_user("email", email)

    def create_user(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        avatar: str = "",
    ) -> User:
        with self._lock:
            if self._find_user("email", email) is not None:
                raise ValidationError("Email already in use", status_code=409)
            if self._find_user("username", username) is not None:
                raise ValidationError("Username already taken", status_code=409)

            uid = uuid.uuid4().hex
            now = self._now_iso()
            try:
                with self._conn:
                    self._conn.execute(
                        """
                        INSERT INTO users(
                          id, username, email, password_hash, bio, avatar, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, '', ?, ?, ?)
                        """.strip(),
                        (uid, username, email, password_hash, avatar, now, now),
                    )
            except sqlite3.IntegrityError as e:
                raise ValidationError("User already exists", status_code=409) from e
            except sqlite3.DatabaseError as e:
                raise StorageError(f"Failed to create user: {e}") from e

            record = self._find_user("id", uid)

        if record is None:
            raise StorageError("Failed to read user after insert")
        return record.user

    def update_profile(self, user_id: str, *, bio: str | None, avatar: str | None) -> User:
        with self._lock:
            self._write(
                """
                UPDATE users SET
                  bio = COALESCE(?, bio),
                  avatar = COALESCE(?, avatar),
                  updated_at = ?
                WHERE id = ?
                """.strip(),
                (bio, avatar, self._now_iso(), user_id),
                what="update profile",
            )
            record = self._find_user("id", user_id)

        if record is None:
            raise NotFoundError("User not found")
        return record.user

    # posts

    def _comments_for(self, post_ids: list[str]) -> dict[str, list[Comment]]:
        out: dict[str, list[Comment]] = {pid: [] for pid in post_ids}
        if not post_ids:
            return out

        marks = ",".join("?" for _ in post_ids)
        rows = self._conn.execute(
            f"{_COMMENT_SELECT} WHERE c.post_id IN ({marks}) ORDER BY c.rowid",
            tuple(post_ids),
        ).fetchall()
        for r in rows:
            out[str(r["post_id"])].append(
                Comment(
                    id=str(r["id"]),
                    content=str(r["content"]),
                    author=AuthorSnapshot(
                        id=str(r["author_id"]),
                        username=str(r["author_username"]),
                        avatar=str(r["author_avatar"] or ""),
                    ),
                    created_at=str(r["created_at"]),
                )
            )
        return out

    @staticmethod
    def _post_from_row(row: sqlite3.Row, comments: list[Comment]) -> Post:
        return Post(
            id=str(row["id"]),
            title=str(row["title"]),
            content=str(row["content"]),
            excerpt=str(row["excerpt"]),
            cover_image=str(row["cover_image"]) if row["cover_image"] is not None else None,
            author=AuthorSnapshot(
                id=str(row["author_id"]),
                username=str(row["author_username"]),
                avatar=str(row["author_avatar"] or ""),
            ),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
            tags=_load_tags(row["tags_json"]),
            likes=int(row["likes"]),
            comments=comments,
        )

    def _read_post(self, post_id: str) -> Post | None:
        row = self._conn.execute(f"{_POST_SELECT} WHERE p.id = ?", (post_id,)).fetchone()
        if row is None:
            return None
        comments = self._comments_for([str(row["id"])])
        return self._post_from_row(row, comments[str(row["id"])])

    def list_posts(self) -> list[Post]:
        with self._lock:
            rows = self._conn.execute(
                f"{_POST_SELECT} ORDER BY p.created_at DESC, p.rowid DESC"
            ).fetchall()
            comments = self._comments_for([str(r["id"]) for r in rows])
            return [self._post_from_row(r, comments[str(r["id"])]) for r in rows]

    def get_post(self, post_id: str) -> Post | None:
        with self._lock:
            return self._read_post(post_id)

    def post_author_id(self, post_id: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT author_id FROM posts WHERE id = ?", (post_id,)
            ).fetchone()
        return str(row["author_id"]) if row is not None else None

    def create_post(self, author_id: str, fields: Mapping[str, Any]) -> Post:
        pid = uuid.uuid4().hex
        with self._lock:
            now = self._now_iso()
            self._write(
                """
                INSERT INTO posts(
                  id, title, content, excerpt, cover_image, author_id,
                  tags_json, likes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                """.strip(),
                (
                    pid,
                    fields["title"],
                    fields["content"],
                    fields["excerpt"],
                    fields.get("cover_image"),
                    author_id,
                    _json_dumps(list(fields.get("tags") or [])),
                    now,
                    now,
                ),
                what="create post",
            )
            post = self._read_post(pid)

        if post is None:
            raise StorageError("Failed to read post after insert")
        return post

    def update_post(self, post_id: str, fields: Mapping[str, Any]) -> Post:
        with self._lock:
            changed = self._write(
                """
                UPDATE posts SET
                  title = ?, content = ?, excerpt = ?, cover_image = ?, tags_json = ?,
                  updated_at = ?
                WHERE id = ?
                """.strip(),
                (
                    fields["title"],
                    fields["content"],
                    fields["excerpt"],
                    fields.get("cover_image"),
                    _json_dumps(list(fields.get("tags") or [])),
                    self._now_iso(),
                    post_id,
                ),
                what="update post",
            )
            post = self._read_post(post_id) if changed else None

        if post is None:
            raise NotFoundError("Post not found")
        return post

    def delete_post(self, post_id: str) -> None:
        with self._lock:
            changed = self._write("DELETE FROM posts WHERE id = ?", (post_id,), what="delete post")
        if not changed:
            raise NotFoundError("Post not found")

    def add_comment(self, post_id: str, author_id: str, content: str) -> Comment:
        cid = uuid.uuid4().hex
        with self._lock:
            exists = self._conn.execute("SELECT 1 FROM posts WHERE id = ?", (post_id,)).fetchone()
            if exists is None:
                raise NotFoundError("Post not found")

            self._write(
                "INSERT INTO comments(id, post_id, author_id, content, created_at) VALUES (?, ?, ?, ?, ?)",
                (cid, post_id, author_id, content, self._now_iso()),
                what="add comment",
            )
            row = self._conn.execute(f"{_COMMENT_SELECT} WHERE c.id = ?", (cid,)).fetchone()

        if row is None:
            raise StorageError("Failed to read comment after insert")
        return Comment(
            id=str(row["id"]),
            content=str(row["content"]),
            author=AuthorSnapshot(
                id=str(row["author_id"]),
                username=str(row["author_username"]),
                avatar=str(row["author_avatar"] or ""),
            ),
            created_at=str(row["created_at"]),
        )

    def increment_likes(self, post_id: str) -> int:
        with self._lock:
            changed = self._write(
                "UPDATE posts SET likes = likes + 1 WHERE id = ?",
                (post_id,),
                what="like post",
            )
            row = self._conn.execute("SELECT likes FROM posts WHERE id = ?", (post_id,)).fetchone()

        if not changed or row is None:
            raise NotFoundError("Post not found")
        return int(row["likes"])

    def post_count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(1) AS n FROM posts").fetchone()
        return int(row["n"]) if row is not None else 0
