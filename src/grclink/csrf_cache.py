"""CSRF token cache shared by every state-changing request."""

from __future__ import annotations

from concurrent.futures import Future
from threading import Lock
from urllib.parse import unquote

import requests
from pydantic import ValidationError

from grclink.config import Settings
from grclink.errors import CsrfTokenError
from grclink.models import CsrfTokenResponse
from grclink.transport import is_state_changing, send_request
from grclink.utils.logger import get_logger

logger = get_logger(__name__)

PLACEHOLDER_TOKEN = "csrf-token-set-in-cookie"

STATE_EMPTY = "empty"
STATE_FETCHING = "fetching"
STATE_CACHED = "cached"


class CsrfTokenCache:
    """Fetch, cache and invalidate the CSRF token.

    The cache is ``empty``, ``fetching`` (one token request outstanding that
    concurrent callers wait on) or ``cached``. The token sent in headers is
    read from the CSRF cookie first; the in-memory copy is the fallback when
    no cookie is present.
    """

    def __init__(self, session: requests.Session, settings: Settings) -> None:
        self._session = session
        self._settings = settings
        self._lock = Lock()
        self._token: str | None = None
        self._pending: Future[str] | None = None

    @property
    def state(self) -> str:
        with self._lock:
            if self._token:
                return STATE_CACHED
            if self._pending is not None:
                return STATE_FETCHING
            return STATE_EMPTY

    def fetch_token(self) -> str:
        """Return the cached token, fetching it once when none is held.

        Returns:
            The token, or ``PLACEHOLDER_TOKEN`` when the server only set the
            cookie.

        Raises:
            CsrfTokenError: When the token endpoint fails.
            NetworkError: When the endpoint is unreachable.
        """

        with self._lock:
            if self._token:
                return self._token
            future = self._pending
            is_leader = future is None
            if is_leader:
                future = Future()
                self._pending = future
        if not is_leader:
            return future.result()
        try:
            token = self._request_token()
        except BaseException as exc:
            logger.error("Error fetching CSRF token: %s", exc)
            with self._lock:
                if self._pending is future:
                    self._pending = None
            future.set_exception(exc)
            raise
        with self._lock:
            # A clear() during the fetch discards this result.
            if self._pending is future:
                self._token = token
                self._pending = None
        future.set_result(token)
        return token

    def _request_token(self) -> str:
        url = self._settings.resolve_url(self._settings.csrf.token_path)
        response = send_request(
            self._session, "GET", url, timeout=self._settings.request_timeout_s
        )
        if not response.ok:
            raise CsrfTokenError(
                f"Failed to fetch CSRF token: {response.status_code} {response.reason}".strip()
            )
        try:
            payload = CsrfTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise CsrfTokenError(f"Invalid CSRF token response: {exc}") from exc
        return payload.csrf_token or PLACEHOLDER_TOKEN

    def token_from_cookie(self) -> str | None:
        """Return the CSRF cookie value, or the memory token as fallback."""

        for cookie_name in self._settings.csrf.cookie_names:
            for cookie in self._session.cookies:
                if cookie.name == cookie_name and cookie.value is not None:
                    return unquote(cookie.value)
        with self._lock:
            if self._token and self._token != PLACEHOLDER_TOKEN:
                return self._token
        return None

    def token_for_request(self, method: str) -> str | None:
        """Return the header token for a request, fetching one if needed.

        Only state-changing requests in production mode carry a token.
        """

        if not self._settings.is_production or not is_state_changing(method):
            return None
        token = self.token_from_cookie()
        if token:
            return token
        self.fetch_token()
        return self.token_from_cookie()

    def get_cached_token(self) -> str | None:
        with self._lock:
            return self._token

    def set_cached_token(self, token: str | None) -> None:
        with self._lock:
            self._token = token

    def clear(self) -> None:
        """Forget the token and drop the CSRF cookies."""
        with self._lock:
            self._token = None
            self._pending = None
        names = set(self._settings.csrf.cookie_names)
        stale = [cookie for cookie in self._session.cookies if cookie.name in names]
        for cookie in stale:
            self._session.cookies.clear(cookie.domain, cookie.path, cookie.name)

    def initialize(self) -> str:
        return self.fetch_token()
