from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError

# Environment variables that win over the YAML file: (env name, section, key).
ENV_OVERRIDES: tuple[tuple[str, str, str], ...] = (
    ("LETSBLOG_API_URL", "api", "base_url"),
    ("LETSBLOG_PORT", "server", "port"),
)


@dataclass(frozen=True)
class ServerSecrets:
    jwt_secret: str


def _read_mapping(p: Path) -> dict[str, Any]:
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")
    return data


def _apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    merged = dict(data)
    for env_name, section, key in ENV_OVERRIDES:
        value = (env.get(env_name) or "").strip()
        if not value:
            continue
        current = merged.get(section)
        block = dict(current) if isinstance(current, dict) else {}
        block[key] = value
        merged[section] = block
    return merged


def load_config(
    path: str | Path, *, environ: Mapping[str, str] | None = None
) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    LETSBLOG_API_URL and LETSBLOG_PORT, when set, replace api.base_url and
    server.port. Raises ConfigError with one line per invalid field.
    """
    p = Path(path)
    env = os.environ if environ is None else environ

    data = _apply_env_overrides(_read_mapping(p), env)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def resolve_server_secrets(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> ServerSecrets:
    """Read the token-signing secret the backend needs from the environment."""
    env = os.environ if environ is None else environ

    name = config.server.jwt_secret_env
    secret = (env.get(name) or "").strip()
    if not secret:
        raise ConfigError(f"Environment variable {name} must hold the token signing secret")

    return ServerSecrets(jwt_secret=secret)


def config_sha256(config: AppConfig) -> str:
    payload = json.dumps(
        config.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines = [f"Invalid configuration in {path}:"]
    lines.extend(
        f"- {'.'.join(str(part) for part in item.get('loc', ())) or '<root>'}: "
        f"{item.get('msg', 'invalid value')}"
        for item in err.errors()
    )
    return "\n".join(lines)
