from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
PositiveFloat = Annotated[float, Field(gt=0)]
Port = Annotated[int, Field(ge=1, le=65535)]


class ApiConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "http://localhost:5000/api"
    health_path: str = "/health"
    probe_timeout_seconds: PositiveFloat | None = 5.0
    request_timeout_seconds: PositiveFloat | None = None  # None keeps the transport default

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_http(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ValueError("must start with http:// or https://")
        return url

    @field_validator("health_path")
    @classmethod
    def _health_path_must_be_absolute(cls, v: str) -> str:
        path = (v or "").strip()
        if not path.startswith("/"):
            raise ValueError("must start with '/'")
        return path


class LocalConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    state_path: str = ".letsblog/local_state.sqlite"


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = "127.0.0.1"
    port: Port = 5000
    database_path: str = ".letsblog/server.sqlite"
    jwt_secret_env: str = "JWT_SECRET"
    token_ttl_days: PositiveInt = 30

    @field_validator("jwt_secret_env")
    @classmethod
    def _secret_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str | None = None  # None writes JSON lines to stderr
    level: Literal["DEBUG", "INFO", "WARN", "ERROR"] = "INFO"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api: ApiConfig = Field(default_factory=ApiConfig)
    local: LocalConfig = Field(default_factory=LocalConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
