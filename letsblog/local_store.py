from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from .errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from .local_state import KeyValueStore
from .models import AuthResult, Comment, Post, PostDraft, ProfileUpdate, StoredUser, User
from .normalize import changed_post_fields, default_avatar_url, new_post_fields
from .session import Session

USERS_KEY = "users"
CURRENT_USER_KEY = "user"
POSTS_KEY = "posts"

NowFn = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _mint_local_token() -> str:
    # Not verifiable: the local store only checks for a current-user record.
    return f"local-token-{int(time.time() * 1000)}"


class LocalBlogStore:
    """
    BlogBackend over on-device key-value persistence.

    Mirrors the remote contract, including the server's ownership checks. Each
    collection is read whole, changed, and written back whole.
    """

    def __init__(self, kv: KeyValueStore, *, now_fn: NowFn | None = None) -> None:
        self._kv = kv
        self._now_fn = now_fn or _utc_now
        self._session = Session()

        current = self._current_user()
        if current is not None:
            self._session.resume(_mint_local_token(), current)

    @property
    def session(self) -> Session:
        return self._session

    def _now_iso(self) -> str:
        return self._now_fn().isoformat()

    def _load_users(self) -> list[StoredUser]:
        raw = self._kv.get_item(USERS_KEY) or []
        return [StoredUser.model_validate(item) for item in raw]

    def _save_users(self, users: list[StoredUser]) -> None:
        self._kv.set_item(USERS_KEY, [u.to_wire() for u in users])

    def _load_posts(self) -> list[Post]:
        raw = self._kv.get_item(POSTS_KEY) or []
        return [Post.model_validate(item) for item in raw]

    def _save_posts(self, posts: list[Post]) -> None:
        self._kv.set_item(POSTS_KEY, [p.to_wire() for p in posts])

    def _current_user(self) -> User | None:
        raw = self._kv.get_item(CURRENT_USER_KEY)
        if not raw:
            return None
        return User.model_validate(raw)

    def _require_user(self, action: str) -> User:
        self._session.require_token(action)
        user = self._current_user()
        if user is None:
            raise AuthenticationError(f"You must be logged in to {action}")
        return user

    def _start_session(self, user: User) -> AuthResult:
        self._kv.set_item(CURRENT_USER_KEY, user.to_wire())
        auth = AuthResult(user=user, token=_mint_local_token())
        self._session.begin(auth)
        return auth

    @staticmethod
    def _index_of(posts: list[Post], post_id: str) -> int:
        for i, post in enumerate(posts):
            if post.id == post_id:
                return i
        raise NotFoundError(f"Post with id {post_id} not found")

    def set_token(self, token: str) -> None:
        self._session.resume(token, self._current_user())

    def clear_token(self) -> None:
        self._session.end()

    def logout(self) -> None:
        self._kv.remove_item(CURRENT_USER_KEY)
        self._session.end()

    def register(self, username: str, email: str, password: str) -> AuthResult:
        name = (username or "").strip()
        mail = (email or "").strip()
        if not name or not mail or not password:
            raise ValidationError("Username, email and password are required")

        users = self._load_users()
        if any(u.email == mail for u in users):
            raise ValidationError("Email already in use")
        if any(u.username == name for u in users):
            raise ValidationError("Username already taken")

        stored = StoredUser(
            id=str(uuid.uuid4()),
            username=name,
            email=mail,
            password=password,
            bio="",
            avatar=default_avatar_url(name),
        )
        users.append(stored)
        self._save_users(users)

        return self._start_session(stored.public())

    def login(self, email: str, password: str) -> AuthResult:
        mail = (email or "").strip()
        for stored in self._load_users():
            if stored.email == mail and stored.password == password:
                return self._start_session(stored.public())
        raise AuthenticationError("Invalid email or password")

    def update_profile(self, update: ProfileUpdate) -> User:
        current = self._require_user("update your profile")

        users = self._load_users()
        for i, stored in enumerate(users):
            if stored.id == current.id:
                break
        else:
            raise NotFoundError("User not found")

        changes: dict[str, Any] = {}
        if update.bio is not None:
            changes["bio"] = update.bio
        if update.avatar is not None:
            changes["avatar"] = update.avatar

        users[i] = stored.model_copy(update=changes)
        self._save_users(users)

        public = users[i].public()
        self._kv.set_item(CURRENT_USER_KEY, public.to_wire())
        self._session.update_user(public)
        return public

    def get_posts(self) -> list[Post]:
        return self._load_posts()

    def get_post(self, post_id: str) -> Post:
        posts = self._load_posts()
        return posts[self._index_of(posts, post_id)]

    def create_post(self, draft: PostDraft) -> Post:
        user = self._require_user("create a post")

        now = self._now_iso()
        post = Post(
            id=str(uuid.uuid4()),
            author=user.snapshot(),
            created_at=now,
            updated_at=now,
            likes=0,
            comments=[],
            **new_post_fields(draft),
        )

        posts = self._load_posts()
        posts.insert(0, post)
        self._save_posts(posts)
        return post

    def update_post(self, post_id: str, draft: PostDraft) -> Post:
        user = self._require_user("update a post")

        posts = self._load_posts()
        i = self._index_of(posts, post_id)
        if posts[i].author.id != user.id:
            raise AuthorizationError("You can only update your own posts")

        fields = changed_post_fields(posts[i].model_dump(), draft)
        posts[i] = posts[i].model_copy(update={**fields, "updated_at": self._now_iso()})
        self._save_posts(posts)
        return posts[i]

    def delete_post(self, post_id: str) -> None:
        user = self._require_user("delete a post")

        posts = self._load_posts()
        i = self._index_of(posts, post_id)
        if posts[i].author.id != user.id:
            raise AuthorizationError("You can only delete your own posts")

        del posts[i]
        self._save_posts(posts)

    def add_comment(self, post_id: str, content: str) -> Comment:
        user = self._require_user("comment")
        if not (content or "").strip():
            raise ValidationError("Comment content is required")

        posts = self._load_posts()
        i = self._index_of(posts, post_id)

        comment = Comment(
            id=str(uuid.uuid4()),
            content=content,
            author=user.snapshot(),
            created_at=self._now_iso(),
        )
        posts[i] = posts[i].model_copy(update={"comments": [*posts[i].comments, comment]})
        self._save_posts(posts)
        return comment

    def toggle_like(self, post_id: str) -> int:
        self._require_user("like a post")

        posts = self._load_posts()
        i = self._index_of(posts, post_id)

        # No per-user tracking: every call adds one.
        likes = posts[i].likes + 1
        posts[i] = posts[i].model_copy(update={"likes": likes})
        self._save_posts(posts)
        return likes
