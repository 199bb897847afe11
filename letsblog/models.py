from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Accepts snake_case or camelCase keys and dumps camelCase."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AuthorSnapshot(_WireModel):
    id: str
    username: str
    avatar: str = ""


class User(_WireModel):
    id: str
    username: str
    email: str
    bio: str = ""
    avatar: str = ""

    def snapshot(self) -> AuthorSnapshot:
        return AuthorSnapshot(id=self.id, username=self.username, avatar=self.avatar)


class StoredUser(User):
    """A user record as kept by the local store, plaintext password included."""

    password: str

    def public(self) -> User:
        return User.model_validate(self.model_dump(exclude={"password"}))


class Comment(_WireModel):
    id: str
    content: str
    author: AuthorSnapshot
    created_at: str


class Post(_WireModel):
    id: str
    title: str
    content: str
    excerpt: str
    cover_image: str | None = None
    author: AuthorSnapshot
    created_at: str
    updated_at: str
    tags: list[str] = Field(default_factory=list)
    likes: int = Field(0, ge=0)
    comments: list[Comment] = Field(default_factory=list)


class AuthResult(_WireModel):
    user: User
    token: str


class PostDraft(_WireModel):
    """Create/update payload. Fields left as None are not supplied."""

    title: str | None = None
    content: str | None = None
    excerpt: str | None = None
    cover_image: str | None = None
    tags: list[str] | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProfileUpdate(_WireModel):
    bio: str | None = None
    avatar: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
