from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import requests

from .api import BlogBackend
from .config_schema import AppConfig
from .event_log import EventLogger
from .local_state import KeyValueStore, SQLiteKeyValueStore
from .local_store import LocalBlogStore
from .remote import HttpSession, RemoteBlogClient, join_url

Mode = Literal["remote", "local"]


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    detail: str


@dataclass(frozen=True)
class BackendSelection:
    mode: Mode
    backend: BlogBackend
    detail: str


def probe_backend(
    base_url: str,
    *,
    health_path: str = "/health",
    http: HttpSession | None = None,
    timeout: float | None = None,
) -> ProbeResult:
    """
    Issue a single GET against the health endpoint.

    Any exception, non-2xx status, or timeout counts as unreachable. No retry.
    """
    url = join_url(base_url, health_path)
    owned = requests.Session() if http is None else None
    client: HttpSession = http if http is not None else owned

    try:
        resp = client.request(
            "GET",
            url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
    except Exception as e:  # every probe failure is treated the same way
        return ProbeResult(reachable=False, detail=f"{type(e).__name__}: {e}")
    finally:
        if owned is not None:
            owned.close()

    status = int(resp.status_code)
    if 200 <= status < 300:
        return ProbeResult(reachable=True, detail=f"status={status}")
    return ProbeResult(reachable=False, detail=f"status={status}")


def select_backend(
    config: AppConfig,
    *,
    http: HttpSession | None = None,
    kv_store: KeyValueStore | None = None,
    logger: EventLogger | None = None,
) -> BackendSelection:
    """
    Decide once, at startup, which backend serves the whole session.

    The decision is never re-checked: a session that starts local stays local,
    and one that starts remote keeps failing with remote errors if the backend
    later goes away.
    """
    owned = requests.Session() if http is None else None
    client: HttpSession = http if http is not None else owned

    probe = probe_backend(
        config.api.base_url,
        health_path=config.api.health_path,
        http=client,
        timeout=config.api.probe_timeout_seconds,
    )

    backend: BlogBackend
    if probe.reachable:
        mode: Mode = "remote"
        backend = RemoteBlogClient(
            config.api.base_url,
            http=client,
            timeout=config.api.request_timeout_seconds,
        )
    else:
        mode = "local"
        if owned is not None:
            owned.close()
        kv = kv_store if kv_store is not None else SQLiteKeyValueStore.open(config.local.state_path)
        backend = LocalBlogStore(kv)

    if logger is not None:
        log = logger.info if probe.reachable else logger.warning
        log(
            "backend_selected",
            mode=mode,
            base_url=config.api.base_url,
            probe=probe.detail,
        )

    return BackendSelection(mode=mode, backend=backend, detail=probe.detail)
