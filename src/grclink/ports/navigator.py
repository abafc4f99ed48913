"""Port interface for client-side navigation."""

from __future__ import annotations

from typing import Protocol


class Navigator(Protocol):
    """Expose the current location and move to another path."""

    @property
    def current_path(self) -> str:
        """Return the path currently shown."""

    def navigate(self, path: str) -> None:
        """Move to ``path``."""
