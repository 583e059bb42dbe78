"""Credential masking for debug logs.

Store requests carry the anon key twice, as the ``apikey`` header and as a
bearer token, and some deployments put it in the query string as well.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "apikey",
        "api_key",
        "authorization",
        "password",
        "mqtt_password",
        "access_token",
        "refresh_token",
    }
)

MASK = "<redacted>"


def _mask(key: str, value: Any) -> Any:
    if key.lower() not in _SECRET_KEYS or value is None:
        return value
    if isinstance(value, str) and value[:7].lower() == "bearer ":
        # Keep the scheme so a missing "Bearer" prefix is still visible.
        return f"{value[:6]} {MASK}"
    return MASK


def redact_url(url: str) -> str:
    """Return *url* with credential query parameters masked."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [(key, _mask(key, value)) for key, value in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="<>")))


def redact_for_log(value: Any, *, max_string: int = 512) -> Any:
    """Return a copy of *value* with credentials masked and long strings cut."""
    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}...<{len(value)} chars>"
        return value
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if isinstance(value, Mapping):
        return {
            str(key): redact_for_log(_mask(str(key), item), max_string=max_string)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_for_log(item, max_string=max_string) for item in value]
    return value
