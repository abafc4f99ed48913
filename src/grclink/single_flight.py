"""Coalesce concurrent identical requests into one underlying call."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future
from threading import Lock
from typing import Any, TypeVar

from grclink.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SingleFlight:
    """Map of request key to the future of the call currently running for it.

    The first caller for a key runs the call; callers arriving while it runs
    block on the same future and receive the same result or error. The entry
    is dropped as soon as the call settles, so a later caller starts a new
    call.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._in_flight: dict[str, Future[Any]] = {}

    def do(self, key: str, fn: Callable[[], T]) -> T:
        """Run ``fn`` once per key among concurrent callers.

        Args:
            key: Request key, usually the resolved URL.
            fn: Zero-argument call producing the result.

        Returns:
            The shared result.
        """

        with self._lock:
            future = self._in_flight.get(key)
            is_leader = future is None
            if is_leader:
                future = Future()
                self._in_flight[key] = future
        if not is_leader:
            logger.debug("Joining in-flight request for %s", key)
            return future.result()
        try:
            result = fn()
        except BaseException as exc:
            self._forget(key)
            future.set_exception(exc)
            raise
        self._forget(key)
        future.set_result(result)
        return result

    def _forget(self, key: str) -> None:
        with self._lock:
            self._in_flight.pop(key, None)

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)
