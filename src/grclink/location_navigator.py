"""In-process navigator recording the current location."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from urllib.parse import urlparse


@dataclass(slots=True)
class LocationNavigator:
    """Track ``href`` and ``pathname`` the way a browser location does.

    Attributes:
        href: Last navigation target.
        history: Every navigation target, oldest first.
    """

    href: str = "/"
    history: list[str] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    @property
    def current_path(self) -> str:
        with self._lock:
            return urlparse(self.href).path or "/"

    def navigate(self, path: str) -> None:
        with self._lock:
            self.href = path
            self.history.append(path)
