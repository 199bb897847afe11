from __future__ import annotations

import time
import uuid
from functools import wraps
from typing import Any, Callable

from flask import Blueprint, Flask, current_app, g, jsonify, request
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

from .auth import TokenSigner, bearer_token, hash_password, verify_password
from .config import ServerSecrets
from .config_schema import AppConfig
from .errors import AuthenticationError, AuthorizationError, BlogError, NotFoundError, ValidationError
from .event_log import EventLogger
from .models import PostDraft, ProfileUpdate, User
from .normalize import changed_post_fields, default_avatar_url, new_post_fields
from .storage import SQLiteBlogRepository

API_PREFIX = "/api"

_REPOSITORY = "letsblog.repository"
_SIGNER = "letsblog.signer"
_LOGGER = "letsblog.logger"

api = Blueprint("api", __name__)


def _repo() -> SQLiteBlogRepository:
    return current_app.extensions[_REPOSITORY]


def _signer() -> TokenSigner:
    return current_app.extensions[_SIGNER]


def _logger() -> EventLogger:
    return current_app.extensions[_LOGGER]


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _str_field(body: dict[str, Any], name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value.strip()


def _parse(model: type[Any], body: dict[str, Any]) -> Any:
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise ValidationError(f"Invalid {loc}: {first.get('msg', 'invalid value')}") from e


def _acting_user() -> User:
    return g.acting_user


def require_auth(view: Callable[..., Any]) -> Callable[..., Any]:
    """Resolve the bearer token to a stored user before running the view."""

    @wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        token = bearer_token(request.headers.get("Authorization"))
        user_id = _signer().verify(token)
        record = _repo().get_user(user_id)
        if record is None:
            raise AuthenticationError("User not found")
        g.acting_user = record.user
        return view(*args, **kwargs)

    return wrapper


def _require_author(post_id: str, action: str) -> None:
    author_id = _repo().post_author_id(post_id)
    if author_id is None:
        raise NotFoundError("Post not found")
    if author_id != _acting_user().id:
        raise AuthorizationError(f"Not authorized to {action} this post")


def _auth_response(user: User, status: int) -> Any:
    token = _signer().issue(user.id)
    return jsonify({"user": user.to_wire(), "token": token}), status


@api.get("/health")
def health() -> Any:
    return jsonify({"status": "ok"})


@api.post("/auth/register")
def register() -> Any:
    body = _json_body()
    username = _str_field(body, "username")
    email = _str_field(body, "email")
    password = body.get("password")
    if not isinstance(password, str) or not password:
        raise ValidationError("password is required")

    user = _repo().create_user(
        username=username,
        email=email,
        password_hash=hash_password(password),
        avatar=default_avatar_url(username),
    )
    _logger().info("user_registered", request_id=g.request_id, user_id=user.id)
    return _auth_response(user, 201)


@api.post("/auth/login")
def login() -> Any:
    body = _json_body()
    email = body.get("email")
    password = body.get("password")
    if not isinstance(email, str) or not isinstance(password, str):
        raise AuthenticationError("Invalid email or password")

    record = _repo().find_user_by_email(email.strip())
    if record is None or not verify_password(record.password_hash, password):
        raise AuthenticationError("Invalid email or password")
    return _auth_response(record.user, 200)


@api.put("/users/profile")
@require_auth
def update_profile() -> Any:
    update: ProfileUpdate = _parse(ProfileUpdate, _json_body())
    user = _repo().update_profile(_acting_user().id, bio=update.bio, avatar=update.avatar)
    return jsonify(user.to_wire())


@api.get("/posts")
def list_posts() -> Any:
    return jsonify([p.to_wire() for p in _repo().list_posts()])


@api.get("/posts/<post_id>")
def get_post(post_id: str) -> Any:
    post = _repo().get_post(post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return jsonify(post.to_wire())


@api.post("/posts")
@require_auth
def create_post() -> Any:
    draft: PostDraft = _parse(PostDraft, _json_body())
    post = _repo().create_post(_acting_user().id, new_post_fields(draft))
    return jsonify(post.to_wire()), 201


@api.put("/posts/<post_id>")
@require_auth
def update_post(post_id: str) -> Any:
    _require_author(post_id, "update")
    draft: PostDraft = _parse(PostDraft, _json_body())

    current = _repo().get_post(post_id)
    if current is None:
        raise NotFoundError("Post not found")

    post = _repo().update_post(post_id, changed_post_fields(current.model_dump(), draft))
    return jsonify(post.to_wire())


@api.delete("/posts/<post_id>")
@require_auth
def delete_post(post_id: str) -> Any:
    _require_author(post_id, "delete")
    _repo().delete_post(post_id)
    return jsonify({"message": "Post deleted successfully"})


@api.post("/posts/<post_id>/comments")
@require_auth
def add_comment(post_id: str) -> Any:
    content = _str_field(_json_body(), "content")
    comment = _repo().add_comment(post_id, _acting_user().id, content)
    return jsonify(comment.to_wire()), 201


@api.post("/posts/<post_id>/like")
@require_auth
def like_post(post_id: str) -> Any:
    # No per-user tracking: every call adds one.
    likes = _repo().increment_likes(post_id)
    return jsonify({"likes": likes})


def _handle_blog_error(err: BlogError) -> Any:
    _logger().info(
        "request_rejected",
        request_id=getattr(g, "request_id", None),
        status=err.status_code,
        error_type=type(err).__name__,
        message=err.message,
    )
    return jsonify({"message": err.message}), err.status_code


def _handle_http_error(err: HTTPException) -> Any:
    return jsonify({"message": err.description or err.name}), err.code or 500


def _handle_unexpected(err: Exception) -> Any:
    _logger().exception(
        "request_failed",
        exc=err,
        request_id=getattr(g, "request_id", None),
        method=request.method,
        path=request.path,
    )
    return jsonify({"message": str(err) or "Internal server error"}), 500


def create_app(
    config: AppConfig,
    secrets: ServerSecrets,
    *,
    repository: SQLiteBlogRepository | None = None,
    logger: EventLogger | None = None,
) -> Flask:
    """
    Build the backend application.

    Passing a repository lets tests run against an in-memory database.
    """
    app = Flask(__name__)
    app.json.sort_keys = False

    repo = repository or SQLiteBlogRepository.open(config.server.database_path)
    log = logger or EventLogger(component="server", level=config.logging.level)

    app.extensions[_REPOSITORY] = repo
    app.extensions[_SIGNER] = TokenSigner(secrets.jwt_secret, ttl_days=config.server.token_ttl_days)
    app.extensions[_LOGGER] = log

    @app.before_request
    def _start_request() -> None:
        g.request_id = uuid.uuid4().hex
        g.started = time.perf_counter()

    @app.after_request
    def _finish_request(response: Any) -> Any:
        started = getattr(g, "started", None)
        elapsed_ms = (time.perf_counter() - started) * 1000.0 if started is not None else None
        log.info(
            "request_completed",
            request_id=getattr(g, "request_id", None),
            method=request.method,
            path=request.path,
            status=response.status_code,
            elapsed_ms=round(elapsed_ms, 2) if elapsed_ms is not None else None,
        )
        return response

    app.register_error_handler(BlogError, _handle_blog_error)
    app.register_error_handler(HTTPException, _handle_http_error)
    app.register_error_handler(Exception, _handle_unexpected)
    app.register_blueprint(api, url_prefix=API_PREFIX)

    return app
