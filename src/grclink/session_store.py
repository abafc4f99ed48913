"""Session-scoped key/value storage."""

from __future__ import annotations

import json
import os
from pathlib import Path
from threading import Lock

from grclink.utils.logger import get_logger
from grclink.utils.now import Now

logger = get_logger(__name__)

REDIRECT_AFTER_LOGIN_KEY = "redirectAfterLogin"
RELOAD_TIMESTAMP_KEY = "chunk-reload-timestamp"
RELOAD_GUARD_WINDOW_MS = 10_000

_LOAD_ERROR_MARKERS = (
    "Failed to fetch dynamically imported module",
    "Failed to load module script",
    "Loading chunk",
    "Loading CSS chunk",
)


class SessionStore:
    """String key/value store that lives as long as the client session.

    With a ``path`` the values are mirrored to a JSON file readable only by
    the owner; otherwise they stay in memory.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._lock = Lock()
        self._items: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if self.path is None:
            return {}
        try:
            raw = self.path.read_text().strip()
        except FileNotFoundError:
            return {}
        if not raw:
            return {}
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid session store file, starting empty: %s", self.path)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(key): str(value) for key, value in payload.items()}

    def _persist(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._items, sort_keys=True))
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            logger.warning("Unable to set permissions on session store: %s", self.path)

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = str(value)
            self._persist()

    def remove_item(self, key: str) -> None:
        with self._lock:
            if self._items.pop(key, None) is not None:
                self._persist()

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._persist()


def is_stale_bundle_error(message: str | None) -> bool:
    """Return True for load failures caused by an outdated deployed bundle."""

    if not message:
        return False
    return any(marker in message for marker in _LOAD_ERROR_MARKERS)


def should_reload_after_load_error(
    store: SessionStore, message: str | None, now_ms: int | None = None
) -> bool:
    """Decide whether a stale-bundle error should trigger a reload.

    A reload is allowed at most once per ``RELOAD_GUARD_WINDOW_MS``; the
    timestamp of an allowed reload is recorded in ``store``.

    Args:
        store: Session store holding the last reload timestamp.
        message: Error message of the load failure.
        now_ms: Current time in milliseconds.

    Returns:
        True when the caller should reload.
    """

    if not is_stale_bundle_error(message):
        return False
    current = Now.as_milliseconds() if now_ms is None else now_ms
    last_reload = store.get_item(RELOAD_TIMESTAMP_KEY)
    try:
        last_ms = int(last_reload) if last_reload else None
    except ValueError:
        last_ms = None
    if last_ms is not None and current - last_ms <= RELOAD_GUARD_WINDOW_MS:
        logger.warning("Skipping reload; last reload was %sms ago", current - last_ms)
        return False
    store.set_item(RELOAD_TIMESTAMP_KEY, str(current))
    return True
