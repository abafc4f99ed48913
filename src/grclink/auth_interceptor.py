"""Session-expiry detection from repeated 401 responses."""

from __future__ import annotations

import time as time_module
from collections.abc import Callable
from threading import Event, Lock, Thread, current_thread
from typing import Any

import requests

from grclink.config import Settings
from grclink.errors import HTTP_STATUS_UNAUTHORIZED
from grclink.ports.navigator import Navigator
from grclink.query_client import QueryClient
from grclink.session_store import REDIRECT_AFTER_LOGIN_KEY, SessionStore
from grclink.transport import send_request
from grclink.utils.logger import get_logger

logger = get_logger(__name__)

MONITOR_JOIN_TIMEOUT_S = 5.0

AuthListener = Callable[[bool], None]


class AuthInterceptor:
    """Count 401s in a sliding window and expire the session on a burst.

    Each error more than ``error_window_s`` after the previous one starts a
    new window. Reaching ``error_threshold`` 401s inside one window expires
    the session once; later 401s in the same window do not fire again.
    """

    def __init__(
        self,
        session: requests.Session,
        settings: Settings,
        query_client: QueryClient,
        navigator: Navigator,
        session_store: SessionStore,
    ) -> None:
        self._session = session
        self._settings = settings
        self._query_client = query_client
        self._navigator = navigator
        self._session_store = session_store
        self._lock = Lock()
        self._error_count = 0
        self._last_error_at: float | None = None
        self._expiry_fired = False
        self._listeners: list[AuthListener] = []
        self._monitor_thread: Thread | None = None
        self._monitor_stop: Event | None = None

    @property
    def error_count(self) -> int:
        with self._lock:
            return self._error_count

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener for authentication state changes.

        Args:
            listener: Called with ``True`` or ``False``.

        Returns:
            A callable removing the listener again.
        """

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, is_authenticated: bool) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(is_authenticated)
            except Exception:
                logger.exception("Auth state listener failed")

    def handle_auth_error(self, status: int, message: str = "Unauthorized") -> bool:
        """Record an auth error and expire the session on a threshold crossing.

        Args:
            status: HTTP status of the failed response.
            message: Error message, for logging.

        Returns:
            True when this call expired the session.
        """

        now = time_module.monotonic()
        auth = self._settings.auth
        with self._lock:
            if self._last_error_at is None or now - self._last_error_at > auth.error_window_s:
                self._error_count = 0
                self._expiry_fired = False
            self._error_count += 1
            self._last_error_at = now
            should_expire = (
                status == HTTP_STATUS_UNAUTHORIZED
                and self._error_count >= auth.error_threshold
                and not self._expiry_fired
            )
            if should_expire:
                self._expiry_fired = True
            count = self._error_count
        logger.debug("Auth error %s (%s) count=%s", status, message, count)
        if should_expire:
            self.handle_session_expired()
        return should_expire

    def handle_session_expired(self) -> None:
        """Clear cached data, notify listeners and navigate to the login page."""
        logger.warning("Session expired, redirecting to login")
        login_path = self._settings.auth.login_path
        self._query_client.clear()
        self._notify(False)
        current_path = self._navigator.current_path
        if current_path not in (login_path, "/"):
            self._session_store.set_item(REDIRECT_AFTER_LOGIN_KEY, current_path)
        self._navigator.navigate(login_path)

    def reset_auth_errors(self) -> None:
        with self._lock:
            self._error_count = 0
            self._last_error_at = None
            self._expiry_fired = False

    def consume_redirect_after_login(self, default: str = "/") -> str:
        """Pop the path remembered at session expiry."""
        path = self._session_store.get_item(REDIRECT_AFTER_LOGIN_KEY)
        self._session_store.remove_item(REDIRECT_AFTER_LOGIN_KEY)
        return path or default

    def check_auth_status(self) -> bool:
        """Call the auth-check endpoint.

        Returns:
            True when the session is valid.
        """

        try:
            response = self._send("GET", self._settings.auth.check_path)
        except requests.RequestException as exc:
            logger.error("Auth check failed: %s", exc)
            return False
        if response.ok:
            self.reset_auth_errors()
            self._notify(True)
            return True
        if response.status_code == HTTP_STATUS_UNAUTHORIZED:
            self._notify(False)
        return False

    def refresh_session(self) -> bool:
        """Ask the server to extend the session.

        Returns:
            True when the refresh succeeded.
        """

        try:
            response = self._send("POST", self._settings.auth.refresh_path)
        except requests.RequestException as exc:
            logger.error("Session refresh failed: %s", exc)
            return False
        if response.ok:
            self.reset_auth_errors()
            self._notify(True)
            return True
        return False

    def run_auth_check(self) -> bool:
        """Run one monitor cycle: check, then refresh once, then expire.

        Returns:
            True when the session is (again) valid.
        """

        if self.check_auth_status():
            return True
        if self.refresh_session():
            return True
        self.handle_session_expired()
        return False

    def start_monitoring(self) -> None:
        """Check the session in a background thread until stopped."""
        with self._lock:
            if self._monitor_thread is not None and self._monitor_thread.is_alive():
                return
            stop = Event()
            thread = Thread(
                target=self._monitor_loop,
                args=(stop,),
                name="grclink-auth-monitor",
                daemon=True,
            )
            self._monitor_stop = stop
            self._monitor_thread = thread
        thread.start()

    def stop_monitoring(self, timeout: float | None = MONITOR_JOIN_TIMEOUT_S) -> None:
        """Stop the monitor and wait for a running auth check to finish."""
        with self._lock:
            stop = self._monitor_stop
            thread = self._monitor_thread
            self._monitor_stop = None
            self._monitor_thread = None
        if stop is not None:
            stop.set()
        if thread is not None and thread.is_alive() and thread is not current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Auth monitor still running after %ss", timeout)

    @property
    def is_monitoring(self) -> bool:
        with self._lock:
            return self._monitor_thread is not None and self._monitor_thread.is_alive()

    def _monitor_loop(self, stop: Event) -> None:
        while not stop.wait(self._settings.auth.check_interval_s):
            try:
                self.run_auth_check()
            except Exception:
                logger.exception("Periodic auth check failed")

    def fetch_with_auth(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request and count a 401 response as an auth error."""
        response = self._send(method, url, **kwargs)
        if response.status_code == HTTP_STATUS_UNAUTHORIZED:
            self.handle_auth_error(HTTP_STATUS_UNAUTHORIZED, "Unauthorized")
        return response

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self._settings.request_timeout_s)
        return send_request(self._session, method, self._settings.resolve_url(path), **kwargs)
