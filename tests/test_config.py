from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from letsblog.config import config_sha256, load_config, resolve_server_secrets
from letsblog.errors import ConfigError


_VALID_YAML = """\
api:
  base_url: http://localhost:5000/api/
  health_path: /health
  probe_timeout_seconds: 2
  request_timeout_seconds: null

local:
  state_path: state/local.sqlite

server:
  host: 0.0.0.0
  port: 8080
  database_path: state/server.sqlite
  jwt_secret_env: BLOG_JWT_SECRET
  token_ttl_days: 7

logging:
  path: null
  level: WARN
"""


class TestConfig(unittest.TestCase):
    def _write(self, td: str, text: str) -> Path:
        path = Path(td) / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_load_config_ok(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, _VALID_YAML), environ={})

            self.assertEqual(cfg.api.base_url, "http://localhost:5000/api")
            self.assertEqual(cfg.api.probe_timeout_seconds, 2.0)
            self.assertIsNone(cfg.api.request_timeout_seconds)
            self.assertEqual(cfg.server.port, 8080)
            self.assertEqual(cfg.server.token_ttl_days, 7)
            self.assertEqual(cfg.logging.level, "WARN")

    def test_empty_file_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, ""), environ={})
            self.assertEqual(cfg.api.health_path, "/health")
            self.assertEqual(cfg.server.jwt_secret_env, "JWT_SECRET")

    def test_rejects_invalid_values(self) -> None:
        bad = [
            _VALID_YAML.replace("port: 8080", "port: 0"),
            _VALID_YAML.replace("http://localhost:5000/api/", "localhost:5000"),
            _VALID_YAML.replace("health_path: /health", "health_path: health"),
            _VALID_YAML + "unknown_section: {}\n",
        ]
        for text in bad:
            with self.subTest(text=text[-40:]):
                with tempfile.TemporaryDirectory() as td:
                    with self.assertRaises(ConfigError):
                        load_config(self._write(td, text), environ={})

    def test_env_overrides_replace_yaml_values(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(
                self._write(td, _VALID_YAML),
                environ={"LETSBLOG_API_URL": "https://blog.example/api", "LETSBLOG_PORT": "9000"},
            )
            self.assertEqual(cfg.api.base_url, "https://blog.example/api")
            self.assertEqual(cfg.api.health_path, "/health")
            self.assertEqual(cfg.server.port, 9000)

            with self.assertRaises(ConfigError):
                load_config(self._write(td, _VALID_YAML), environ={"LETSBLOG_PORT": "nope"})

    def test_missing_file(self) -> None:
        with self.assertRaises(ConfigError):
            load_config("/nonexistent/letsblog.yaml")

    def test_resolve_server_secrets_requires_env(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, _VALID_YAML), environ={})

            with self.assertRaises(ConfigError):
                resolve_server_secrets(cfg, environ={})

            secrets = resolve_server_secrets(cfg, environ={"BLOG_JWT_SECRET": " s3cret "})
            self.assertEqual(secrets.jwt_secret, "s3cret")

    def test_config_hash_is_stable(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            a = load_config(self._write(td, _VALID_YAML))
            b = load_config(self._write(td, _VALID_YAML))
            self.assertEqual(config_sha256(a), config_sha256(b))


if __name__ == "__main__":
    unittest.main()
