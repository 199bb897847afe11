from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class EventLogger:
    """
    JSONL logger shared by the backend, the CLI and backend selection.

    Each line is a single JSON object. Writes to a file when a path is given,
    otherwise to the given stream (stderr by default).
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        stream: TextIO | None = None,
        overwrite: bool = False,
        component: str = "letsblog",
        level: str = "INFO",
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._overwrite = bool(overwrite)
        self._component = (component or "").strip() or "letsblog"
        self._min_level = _LEVELS.get((level or "").strip().upper(), _LEVELS["INFO"])
        self._stream = stream
        self._fp: TextIO | None = None
        self._owns_fp = False
        self._opened = False
        self._lock = Lock()

    @classmethod
    def open(
        cls,
        path: str | Path | None,
        *,
        overwrite: bool = False,
        component: str = "letsblog",
        level: str = "INFO",
    ) -> "EventLogger":
        logger = cls(path, overwrite=overwrite, component=component, level=level)
        logger._ensure_open()
        return logger

    def close(self) -> None:
        with self._lock:
            if self._fp is not None and self._owns_fp:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
            self._fp = None
            self._owns_fp = False

    def __enter__(self) -> "EventLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def debug(self, event: str, *, request_id: str | None = None, **data: Any) -> None:
        self.log("DEBUG", event, request_id=request_id, **data)

    def info(self, event: str, *, request_id: str | None = None, **data: Any) -> None:
        self.log("INFO", event, request_id=request_id, **data)

    def warning(self, event: str, *, request_id: str | None = None, **data: Any) -> None:
        self.log("WARN", event, request_id=request_id, **data)

    def error(self, event: str, *, request_id: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, request_id=request_id, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        request_id: str | None = None,
        **data: Any,
    ) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log("ERROR", event, request_id=request_id, error=err, **data)

    def log(self, level: str, event: str, *, request_id: str | None = None, **data: Any) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        if _LEVELS.get(lvl, _LEVELS["INFO"]) < self._min_level:
            return

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": (event or "").strip() or "event",
            "component": self._component,
        }

        rid = (request_id or "").strip()
        if rid:
            record["request_id"] = rid

        if data:
            record["data"] = data

        self._write(record)

    def _ensure_open(self) -> None:
        if self._fp is not None:
            return

        with self._lock:
            if self._fp is not None:
                return

            if self._path is None:
                self._fp = self._stream if self._stream is not None else sys.stderr
                self._owns_fp = False
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite and not self._opened else "a"
            self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
            self._owns_fp = True
            self._opened = True

    def _write(self, record: dict[str, Any]) -> None:
        self._ensure_open()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()
