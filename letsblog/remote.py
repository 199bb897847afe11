from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import quote

import requests
from pydantic import ValidationError as PydanticValidationError

from .errors import (
    AuthenticationError,
    AuthorizationError,
    BlogAPIError,
    BlogError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from .models import AuthResult, Comment, Post, PostDraft, ProfileUpdate, User
from .session import Session


class _Response(Protocol):
    status_code: int

    def json(self) -> Any: ...


class HttpSession(Protocol):
    def request(self, method: str, url: str, **kwargs: Any) -> _Response: ...


_STATUS_ERRORS: dict[int, type[BlogError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ValidationError,
    422: ValidationError,
}


def join_url(base_url: str, path: str) -> str:
    base = (base_url or "").strip().rstrip("/")
    if not base:
        raise ValueError("base_url must be non-empty")
    p = (path or "").strip()
    if not p.startswith("/"):
        p = "/" + p
    return base + p


def _post_path(post_id: str, suffix: str = "") -> str:
    return f"/posts/{quote(str(post_id), safe='')}{suffix}"


def _body(resp: _Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _error_for(resp: _Response, fallback: str) -> BlogError:
    body = _body(resp)
    message = ""
    if isinstance(body, dict):
        raw = body.get("message")
        if isinstance(raw, str):
            message = raw.strip()

    status = int(resp.status_code)
    cls = _STATUS_ERRORS.get(status, BlogAPIError)
    return cls(message or fallback, status_code=status)


class RemoteBlogClient:
    """
    BlogBackend over the REST API.

    One request per operation, no retries. The bearer token lives only in memory.
    """

    def __init__(
        self,
        base_url: str,
        *,
        http: HttpSession | None = None,
        timeout: float | None = None,
        session: Session | None = None,
    ) -> None:
        self._base_url = (base_url or "").strip().rstrip("/")
        if not self._base_url:
            raise ValueError("base_url must be non-empty")
        self._http: HttpSession = http if http is not None else requests.Session()
        self._timeout = timeout
        self._session = session or Session()

    @property
    def session(self) -> Session:
        return self._session

    def set_token(self, token: str) -> None:
        self._session.resume(token)

    def clear_token(self) -> None:
        self._session.end()

    def logout(self) -> None:
        self._session.end()

    def _send(
        self,
        method: str,
        path: str,
        *,
        fallback: str,
        payload: dict[str, Any] | None = None,
        auth_action: str | None = None,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        if auth_action is not None:
            token = self._session.require_token(auth_action)
            headers["Authorization"] = f"Bearer {token}"

        url = join_url(self._base_url, path)
        try:
            resp = self._http.request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{fallback}: {e}") from e

        status = int(resp.status_code)
        if status < 200 or status >= 300:
            raise _error_for(resp, fallback)

        return _body(resp)

    def _parse(self, model: type[Any], body: Any, fallback: str) -> Any:
        try:
            return model.model_validate(body)
        except PydanticValidationError as e:
            raise BlogAPIError(f"{fallback}: malformed response ({e.error_count()} errors)") from e

    def register(self, username: str, email: str, password: str) -> AuthResult:
        fallback = "Registration failed"
        body = self._send(
            "POST",
            "/auth/register",
            fallback=fallback,
            payload={"username": username, "email": email, "password": password},
        )
        auth: AuthResult = self._parse(AuthResult, body, fallback)
        self._session.begin(auth)
        return auth

    def login(self, email: str, password: str) -> AuthResult:
        fallback = "Login failed"
        body = self._send(
            "POST",
            "/auth/login",
            fallback=fallback,
            payload={"email": email, "password": password},
        )
        auth: AuthResult = self._parse(AuthResult, body, fallback)
        self._session.begin(auth)
        return auth

    def update_profile(self, update: ProfileUpdate) -> User:
        fallback = "Failed to update profile"
        body = self._send(
            "PUT",
            "/users/profile",
            fallback=fallback,
            payload=update.to_wire(),
            auth_action="update your profile",
        )
        user: User = self._parse(User, body, fallback)
        self._session.update_user(user)
        return user

    def get_posts(self) -> list[Post]:
        fallback = "Failed to fetch posts"
        body = self._send("GET", "/posts", fallback=fallback)
        if not isinstance(body, list):
            raise BlogAPIError(f"{fallback}: expected a list of posts")
        return [self._parse(Post, item, fallback) for item in body]

    def get_post(self, post_id: str) -> Post:
        fallback = f"Failed to fetch post with id {post_id}"
        body = self._send("GET", _post_path(post_id), fallback=fallback)
        return self._parse(Post, body, fallback)

    def create_post(self, draft: PostDraft) -> Post:
        fallback = "Failed to create post"
        body = self._send(
            "POST",
            "/posts",
            fallback=fallback,
            payload=draft.to_wire(),
            auth_action="create a post",
        )
        return self._parse(Post, body, fallback)

    def update_post(self, post_id: str, draft: PostDraft) -> Post:
        fallback = f"Failed to update post with id {post_id}"
        body = self._send(
            "PUT",
            _post_path(post_id),
            fallback=fallback,
            payload=draft.to_wire(),
            auth_action="update a post",
        )
        return self._parse(Post, body, fallback)

    def delete_post(self, post_id: str) -> None:
        self._send(
            "DELETE",
            _post_path(post_id),
            fallback=f"Failed to delete post with id {post_id}",
            auth_action="delete a post",
        )

    def add_comment(self, post_id: str, content: str) -> Comment:
        fallback = f"Failed to add comment to post with id {post_id}"
        body = self._send(
            "POST",
            _post_path(post_id, "/comments"),
            fallback=fallback,
            payload={"content": content},
            auth_action="comment",
        )
        return self._parse(Comment, body, fallback)

    def toggle_like(self, post_id: str) -> int:
        fallback = f"Failed to toggle like for post with id {post_id}"
        body = self._send(
            "POST",
            _post_path(post_id, "/like"),
            fallback=fallback,
            auth_action="like a post",
        )
        likes = body.get("likes") if isinstance(body, dict) else None
        if isinstance(likes, bool) or not isinstance(likes, int):
            raise BlogAPIError(f"{fallback}: response missing like count")
        return likes
