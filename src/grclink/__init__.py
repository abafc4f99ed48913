"""GRCLINK client runtime entrypoints."""

from grclink.api_client import ApiClient
from grclink.auth_interceptor import AuthInterceptor
from grclink.config import Settings, get_settings
from grclink.csrf_cache import CsrfTokenCache
from grclink.errors import ApiError, CsrfTokenError, GrcClientError, NetworkError
from grclink.query_client import QueryClient
from grclink.query_keys import QueryKeys, query_keys
from grclink.retry import RETRY_PROFILES, RetryPolicy, with_retry
from grclink.runtime import ClientRuntime, build_runtime

__all__ = [
    "RETRY_PROFILES",
    "ApiClient",
    "ApiError",
    "AuthInterceptor",
    "ClientRuntime",
    "CsrfTokenCache",
    "CsrfTokenError",
    "GrcClientError",
    "NetworkError",
    "QueryClient",
    "QueryKeys",
    "RetryPolicy",
    "Settings",
    "build_runtime",
    "get_settings",
    "query_keys",
    "with_retry",
]
