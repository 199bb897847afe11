from __future__ import annotations

from typing import Protocol

from .models import AuthResult, Comment, Post, PostDraft, ProfileUpdate, User


class BlogBackend(Protocol):
    """
    The operation set shared by the remote client and the local store.

    Callers hold a BlogBackend and never learn which implementation serves them.
    """

    def register(self, username: str, email: str, password: str) -> AuthResult: ...

    def login(self, email: str, password: str) -> AuthResult: ...

    def logout(self) -> None: ...

    def set_token(self, token: str) -> None: ...

    def clear_token(self) -> None: ...

    def update_profile(self, update: ProfileUpdate) -> User: ...

    def get_posts(self) -> list[Post]: ...

    def get_post(self, post_id: str) -> Post: ...

    def create_post(self, draft: PostDraft) -> Post: ...

    def update_post(self, post_id: str, draft: PostDraft) -> Post: ...

    def delete_post(self, post_id: str) -> None: ...

    def add_comment(self, post_id: str, content: str) -> Comment: ...

    def toggle_like(self, post_id: str) -> int: ...
