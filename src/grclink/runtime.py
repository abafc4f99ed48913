"""Default wiring of the client runtime."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import requests

from grclink.api_client import ApiClient
from grclink.auth_interceptor import AuthInterceptor
from grclink.config import Settings, get_settings
from grclink.csrf_cache import CsrfTokenCache
from grclink.location_navigator import LocationNavigator
from grclink.ports.navigator import Navigator
from grclink.query_client import QueryClient
from grclink.session_store import SessionStore


@dataclass(slots=True)
class ClientRuntime:
    """Owns every cache of one client session.

    Attributes:
        settings: Runtime configuration.
        session: HTTP session carrying the auth and CSRF cookies.
        query_client: Cache of server data.
        session_store: Session-scoped key/value storage.
        navigator: Current location and navigation.
        csrf_cache: CSRF token cache.
        auth: Auth interceptor and session monitor.
        api: Request entry point.
    """

    settings: Settings
    session: requests.Session
    query_client: QueryClient
    session_store: SessionStore
    navigator: Navigator
    csrf_cache: CsrfTokenCache
    auth: AuthInterceptor
    api: ApiClient

    def fetch_query(self, query_key: str | Sequence[Any], **kwargs: Any) -> Any:
        return self.query_client.fetch_query(query_key, **kwargs)

    def close(self) -> None:
        self.auth.stop_monitoring()
        self.session.close()

    def __enter__(self) -> ClientRuntime:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


def build_runtime(
    settings: Settings | None = None,
    *,
    session: requests.Session | None = None,
    navigator: Navigator | None = None,
    session_store: SessionStore | None = None,
    sleep: Callable[[float], None] | None = None,
) -> ClientRuntime:
    """Wire a runtime from settings, filling in default collaborators.

    Args:
        settings: Configuration; defaults to ``get_settings()``.
        session: HTTP session; a new ``requests.Session`` by default.
        navigator: Navigation port; an in-process ``LocationNavigator`` by default.
        session_store: Storage; file-backed when the settings name a path.
        sleep: Sleep used between retries.

    Returns:
        The wired runtime.
    """

    active_settings = settings or get_settings()
    http_session = session or requests.Session()
    query_client = QueryClient.from_settings(active_settings)
    store = session_store or SessionStore(active_settings.session_store_path)
    location = navigator or LocationNavigator()
    csrf_cache = CsrfTokenCache(http_session, active_settings)
    auth = AuthInterceptor(http_session, active_settings, query_client, location, store)
    api = ApiClient(http_session, active_settings, csrf_cache, auth, sleep=sleep)
    query_client.set_default_query_fn(api.get_query_fn())
    return ClientRuntime(
        settings=active_settings,
        session=http_session,
        query_client=query_client,
        session_store=store,
        navigator=location,
        csrf_cache=csrf_cache,
        auth=auth,
        api=api,
    )
