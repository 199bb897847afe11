from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthenticationError

_ALGORITHM = "HS256"
_BEARER_PREFIX = "Bearer "


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash or password is None:
        return False
    return check_password_hash(password_hash, password)


class TokenSigner:
    """Issues and verifies the HS256 bearer tokens handed out at login/register."""

    def __init__(self, secret: str, *, ttl_days: int = 30) -> None:
        if not (secret or "").strip():
            raise ValueError("secret must be non-empty")
        if ttl_days < 1:
            raise ValueError("ttl_days must be >= 1")
        self._secret = secret
        self._ttl = timedelta(days=int(ttl_days))

    def issue(self, user_id: str, *, now: datetime | None = None) -> str:
        issued = now or datetime.now(timezone.utc)
        payload = {
            "id": user_id,
            "iat": issued,
            "exp": issued + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the user id the token was issued for."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except jwt.PyJWTError as e:
            raise AuthenticationError("Invalid token") from e

        uid = payload.get("id")
        if not isinstance(uid, str) or not uid.strip():
            raise AuthenticationError("Invalid token")
        return uid


def bearer_token(header: str | None) -> str:
    value = (header or "").strip()
    if not value.startswith(_BEARER_PREFIX):
        raise AuthenticationError("Authentication required")
    token = value[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise AuthenticationError("Authentication required")
    return token
