from __future__ import annotations

from .errors import AuthenticationError
from .models import AuthResult, User


class Session:
    """
    The authenticated identity a backend acts for.

    Started by login/register (or by resuming a known token) and ended by logout.
    """

    def __init__(self) -> None:
        self._token: str | None = None
        self._user: User | None = None

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def begin(self, auth: AuthResult) -> None:
        token = (auth.token or "").strip()
        if not token:
            raise AuthenticationError("Authentication returned an empty token")
        self._token = token
        self._user = auth.user

    def resume(self, token: str, user: User | None = None) -> None:
        t = (token or "").strip()
        if not t:
            raise ValueError("token must be non-empty")
        self._token = t
        self._user = user

    def update_user(self, user: User) -> None:
        if self._token is not None:
            self._user = user

    def end(self) -> None:
        self._token = None
        self._user = None

    def require_token(self, action: str) -> str:
        if self._token is None:
            raise AuthenticationError(f"You must be logged in to {action}")
        return self._token
