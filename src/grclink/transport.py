"""Thin ``requests`` boundary that classifies transport failures."""

from __future__ import annotations

import json
from typing import Any

import requests

from grclink.errors import TRANSPORT_ERRORS, NetworkError

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def is_state_changing(method: str) -> bool:
    """Return True for verbs that need a JSON content type and a CSRF token."""

    return method.upper() not in SAFE_METHODS


def send_request(
    session: requests.Session, method: str, url: str, **kwargs: Any
) -> requests.Response:
    """Send one HTTP request, translating transport failures.

    Args:
        session: Session holding cookies for the API origin.
        method: HTTP verb.
        url: Absolute URL.
        **kwargs: Extra arguments forwarded to ``Session.request``.

    Returns:
        The response, whatever its status.

    Raises:
        NetworkError: When the connection failed, timed out or broke off
            before the body was read.
    """

    try:
        return session.request(method.upper(), url, **kwargs)
    except TRANSPORT_ERRORS as exc:
        raise NetworkError(f"Failed to fetch {method.upper()} {url}: {exc}") from exc


def read_response_body(response: requests.Response) -> tuple[str, Any]:
    """Return the raw body text and its JSON value, or the text when not JSON."""

    text = response.text or getattr(response, "reason", "") or ""
    try:
        return text, json.loads(text)
    except (TypeError, ValueError):
        return text, text
