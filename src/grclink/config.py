from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PRODUCTION_MODE = "production"
DEVELOPMENT_MODE = "development"
DEFAULT_BASE_URL = "http://localhost:5000"
PRODUCTION_CSRF_COOKIE = "__Host-psifi.x-csrf-token"
DEVELOPMENT_CSRF_COOKIE = "psifi.x-csrf-token"


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _read_session_store_path() -> Path | None:
    value = os.getenv("GRC_SESSION_STORE_PATH")
    if not value:
        return None
    return Path(value)


def _raise_on_unexpected_kwargs(kwargs: dict[str, object]) -> None:
    if kwargs:
        unexpected = next(iter(kwargs))
        raise TypeError(f"get_settings() got an unexpected keyword argument '{unexpected}'")


@dataclass(slots=True)
class CsrfSettings:
    """CSRF token endpoint and cookie configuration."""

    token_path: str = field(default_factory=lambda: _env_str("GRC_CSRF_TOKEN_PATH", "/api/csrf-token"))
    header_name: str = "x-csrf-token"
    cookie_names: tuple[str, ...] = (PRODUCTION_CSRF_COOKIE, DEVELOPMENT_CSRF_COOKIE)


@dataclass(slots=True)
class AuthSettings:
    """Session-expiry detection and auth check configuration."""

    check_path: str = "/api/auth/check"
    refresh_path: str = "/api/auth/refresh"
    login_path: str = "/login"
    error_threshold: int = field(default_factory=lambda: _env_int("GRC_AUTH_ERROR_THRESHOLD", 3))
    error_window_s: float = field(
        default_factory=lambda: _env_float("GRC_AUTH_ERROR_WINDOW_S", 5.0)
    )
    check_interval_s: float = field(
        default_factory=lambda: _env_float("GRC_AUTH_CHECK_INTERVAL_S", 300.0)
    )


@dataclass(slots=True)
class Settings:
    """Central configuration for the GRC client runtime."""

    base_url: str = field(default_factory=lambda: _env_str("GRC_BASE_URL", DEFAULT_BASE_URL))
    mode: str = field(default_factory=lambda: _env_str("GRC_MODE", DEVELOPMENT_MODE).lower())
    request_timeout_s: float = field(
        default_factory=lambda: _env_float("GRC_REQUEST_TIMEOUT_S", 30.0)
    )
    stale_time_s: float = field(default_factory=lambda: _env_float("GRC_STALE_TIME_S", 60.0))
    gc_time_s: float = field(default_factory=lambda: _env_float("GRC_GC_TIME_S", 600.0))
    session_store_path: Path | None = field(default_factory=_read_session_store_path)

    csrf: CsrfSettings = field(default_factory=CsrfSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)

    @property
    def is_production(self) -> bool:
        return self.mode == PRODUCTION_MODE

    def resolve_url(self, path: str) -> str:
        """Join an API path onto the configured base URL.

        Absolute URLs are returned unchanged.
        """

        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


def get_settings(**overrides: object) -> Settings:
    """Return a fresh Settings instance with keyword overrides applied.

    Raises:
        TypeError: When an override does not name a settings field.
    """

    load_dotenv()
    settings = Settings()
    names = {item.name for item in fields(Settings)}
    unexpected = {key: value for key, value in overrides.items() if key not in names}
    _raise_on_unexpected_kwargs(unexpected)
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings
