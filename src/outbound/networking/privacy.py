"""Do-not-track detection and URL synthesis for logging."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote

DO_NOT_TRACK_HEADERS = ("DNT", "dnt", "do_not_track")

# Reserved characters left as-is in logged URLs, as encodeURI does.
URI_SAFE = ";,/?:@&=+$!*'()#"


def context_headers(request_context: Any) -> Mapping[str, Any]:
    """Return the headers of a request context, or an empty mapping.

    A context is either a mapping with a ``headers`` key or an object with a
    ``headers`` attribute.
    """
    if request_context is None:
        return {}
    if isinstance(request_context, Mapping):
        headers = request_context.get("headers")
    else:
        headers = getattr(request_context, "headers", None)
    return headers or {}


def is_do_not_track(request_context: Any) -> bool:
    """Presence test for any do-not-track header; the value is irrelevant."""
    headers = context_headers(request_context)
    return any(name in headers for name in DO_NOT_TRACK_HEADERS)


def encode_query(parameters: Mapping[str, Any]) -> str:
    return "&".join(
        f"{quote(str(key), URI_SAFE)}={quote(str(value), URI_SAFE)}"
        for key, value in parameters.items()
    )


def synthesize_url(url: str | None, parameters: Mapping[str, Any]) -> str:
    """Rebuild the URL requests will send, for log and error messages.

    ``?`` is only added when there is at least one parameter.
    """
    base = url or ""
    query = encode_query(parameters)
    if not query:
        return base
    return f"{base}?{query}"
