"""Port interfaces for grclink."""

from grclink.ports.navigator import Navigator

__all__ = ["Navigator"]
