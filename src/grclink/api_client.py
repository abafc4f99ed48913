"""Requests against the GRC REST API with retry, CSRF and auth handling."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import requests

from grclink.auth_interceptor import AuthInterceptor
from grclink.config import Settings
from grclink.csrf_cache import CsrfTokenCache
from grclink.errors import HTTP_STATUS_FORBIDDEN, HTTP_STATUS_UNAUTHORIZED, ApiError
from grclink.query_keys import QueryKey, QueryKeys, build_query_url
from grclink.retry import RETRY_PROFILES, with_retry
from grclink.single_flight import SingleFlight
from grclink.transport import is_state_changing, read_response_body, send_request
from grclink.utils.logger import get_logger

logger = get_logger(__name__)

ON_401_THROW = "throw"
ON_401_RETURN_NULL = "return_null"
_UNAUTHORIZED_BEHAVIORS = (ON_401_THROW, ON_401_RETURN_NULL)
HTTP_STATUS_NO_CONTENT = 204
CSRF_ERROR_MARKER = "CSRF"


class ApiClient:
    """Issue API requests on behalf of the client runtime.

    Reads go through ``get_json``: one in-flight request per URL, retried
    under the ``fetch`` profile. Every other verb goes through
    ``api_request`` under the ``critical`` profile, with a JSON body and, in
    production, the CSRF header.
    """

    def __init__(
        self,
        session: requests.Session,
        settings: Settings,
        csrf_cache: CsrfTokenCache,
        auth_interceptor: AuthInterceptor,
        single_flight: SingleFlight | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._csrf_cache = csrf_cache
        self._auth = auth_interceptor
        self._single_flight = single_flight or SingleFlight()
        self._sleep = sleep

    def raise_if_response_not_ok(self, response: requests.Response) -> None:
        """Translate a non-2xx response into ``ApiError``.

        A 401 is reported to the auth interceptor first. A production 403
        whose body mentions CSRF is flagged as a CSRF error.

        Raises:
            ApiError: For any non-2xx response.
        """

        if response.ok:
            return
        text, body = read_response_body(response)
        message = text or response.reason or f"HTTP {response.status_code}"
        if isinstance(body, dict) and body.get("message"):
            message = str(body["message"])
        status = response.status_code
        if status == HTTP_STATUS_UNAUTHORIZED:
            self._auth.handle_auth_error(status, message)
        is_csrf_error = bool(
            self._settings.is_production
            and status == HTTP_STATUS_FORBIDDEN
            and CSRF_ERROR_MARKER in text
        )
        if is_csrf_error:
            logger.warning("CSRF token invalid, will retry with fresh token")
        raise ApiError(
            message,
            status=status,
            body=body,
            is_csrf_error=is_csrf_error,
            response=response,
        )

    def api_request(self, method: str, url: str, data: Any = None) -> Any:
        """Send a request and return its decoded JSON body.

        A CSRF rejection clears the token cache and repeats the request once
        with a fresh token. Anything but GET is retried under the
        ``critical`` profile.

        Args:
            method: HTTP verb.
            url: API path or absolute URL.
            data: JSON-serializable body.

        Returns:
            Decoded JSON, or ``None`` for 204 responses.
        """

        verb = method.upper()
        target = self._settings.resolve_url(url)

        def make_request(attempt: int = 1) -> Any:
            headers: dict[str, str] = {}
            if is_state_changing(verb):
                headers["Content-Type"] = "application/json"
            token = self._csrf_cache.token_for_request(verb)
            if token:
                headers[self._settings.csrf.header_name] = token
            response = send_request(
                self._session,
                verb,
                target,
                headers=headers,
                json=data,
                timeout=self._settings.request_timeout_s,
            )
            try:
                self.raise_if_response_not_ok(response)
            except ApiError as exc:
                if exc.is_csrf_error and attempt == 1:
                    logger.info("CSRF token invalid, clearing cache and retrying %s %s", verb, url)
                    self._csrf_cache.clear()
                    return make_request(2)
                raise
            if response.status_code == HTTP_STATUS_NO_CONTENT:
                return None
            return response.json()

        if verb == "GET":
            return make_request()
        return with_retry(
            make_request,
            RETRY_PROFILES["critical"],
            on_retry=lambda attempt, error: logger.warning(
                "Retrying %s %s (attempt %s): %s", verb, url, attempt, error
            ),
            sleep=self._sleep,
        )

    def get_json(self, query_key: str | Sequence[Any], on_401: str = ON_401_THROW) -> Any:
        """Fetch the JSON document behind a query key.

        Args:
            query_key: Query key; see ``build_query_url``.
            on_401: ``"throw"`` raises on 401, ``"return_null"`` returns None.

        Returns:
            Decoded JSON body.

        Raises:
            ValueError: For an unknown ``on_401`` behavior.
            ApiError: For non-2xx responses.
        """

        if on_401 not in _UNAUTHORIZED_BEHAVIORS:
            raise ValueError(f"Unknown unauthorized behavior: {on_401}")
        path = build_query_url(query_key)
        target = self._settings.resolve_url(path)

        def fetch_data() -> Any:
            response = send_request(
                self._session, "GET", target, timeout=self._settings.request_timeout_s
            )
            if on_401 == ON_401_RETURN_NULL and response.status_code == HTTP_STATUS_UNAUTHORIZED:
                return None
            self.raise_if_response_not_ok(response)
            return response.json()

        return self._single_flight.do(
            target,
            lambda: with_retry(
                fetch_data,
                RETRY_PROFILES["fetch"],
                on_retry=lambda attempt, error: logger.warning(
                    "Retrying fetch %s (attempt %s): %s", path, attempt, error
                ),
                sleep=self._sleep,
            ),
        )

    def get_query_fn(self, on_401: str = ON_401_THROW) -> Callable[[QueryKey], Any]:
        """Return a query function usable as the cache default."""

        def query_fn(query_key: QueryKey) -> Any:
            return self.get_json(query_key, on_401=on_401)

        return query_fn

    def current_user(self) -> dict[str, Any] | None:
        """Return the signed-in user, or None when not authenticated."""
        return self.get_json(QueryKeys.auth.user(), on_401=ON_401_RETURN_NULL)
