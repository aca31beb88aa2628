"""Error taxonomy for outbound service calls.

``ConfigurationError`` is raised synchronously for programmer errors. Every
other error is a ``ServiceError`` returned inside an ``Err`` result; callers
branch on ``error.kind`` (or the class) instead of parsing messages.
"""

from __future__ import annotations

import errno
from enum import Enum
from typing import Any

DO_NOT_TRACK_MARKER = " [do_not_track]"


class ConfigurationError(ValueError):
    """Invalid service configuration or factory argument."""


class ErrorKind(Enum):
    DISABLED = "disabled"
    HTTP_STATUS = "http_status"
    TRANSPORT = "transport"
    PARSE = "parse"


class ServiceError(Exception):
    """Base class for failures reported through a result."""

    kind: ErrorKind

    @property
    def callback_value(self) -> Any:
        """Value handed to error-first callbacks for this failure."""
        return str(self)


def _marker(do_not_track: bool) -> str:
    return DO_NOT_TRACK_MARKER if do_not_track else ""


class ServiceDisabledError(ServiceError):
    """The service has no base URL; every call fails the same way."""

    kind = ErrorKind.DISABLED

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} service disabled")
        self.name = name


class HttpStatusError(ServiceError):
    """The remote answered with a non-2xx status after retries ran out."""

    kind = ErrorKind.HTTP_STATUS

    def __init__(
        self, url: str, status: int, body: str, *, do_not_track: bool = False
    ) -> None:
        super().__init__(
            f"{url}{_marker(do_not_track)} returned status {status}: {body}"
        )
        self.url = url
        self.status = status
        self.body = body
        self.do_not_track = do_not_track


class ParseError(ServiceError):
    """A 2xx response whose body is not JSON."""

    kind = ErrorKind.PARSE

    def __init__(
        self, url: str, body: str, *, do_not_track: bool = False
    ) -> None:
        super().__init__(
            f"{url}{_marker(do_not_track)} could not parse response: {body}"
        )
        self.url = url
        self.body = body
        self.do_not_track = do_not_track


class TransportError(ServiceError):
    """No response was obtained (connection refused, DNS, timeouts).

    The underlying ``requests`` exception is kept unmodified in ``cause`` and
    is what error-first callbacks receive. Its text names the request path
    and query, so do-not-track messages only carry the exception class and
    errno code.
    """

    kind = ErrorKind.TRANSPORT

    def __init__(
        self, url: str, cause: BaseException, *, do_not_track: bool = False
    ) -> None:
        if do_not_track:
            detail = describe_cause(cause)
        else:
            detail = str(cause)
        super().__init__(f"{url}{_marker(do_not_track)}: {detail}")
        self.url = url
        self.cause = cause
        self.do_not_track = do_not_track

    @property
    def callback_value(self) -> Any:
        return self.cause

    @property
    def code(self) -> str | None:
        """Symbolic errno (e.g. ``ECONNREFUSED``) found in the cause chain."""
        return find_errno_code(self.cause)


def find_errno_code(exc: BaseException | None) -> str | None:
    """Walk a requests/urllib3 exception chain looking for an OSError errno."""
    seen: set[int] = set()
    pending: list[Any] = [exc]
    while pending:
        current = pending.pop(0)
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))
        code = getattr(current, "errno", None)
        if isinstance(current, OSError) and isinstance(code, int):
            return errno.errorcode.get(code)
        # urllib3 wraps the socket error as MaxRetryError.reason, requests
        # wraps MaxRetryError as the first positional argument.
        pending.append(getattr(current, "reason", None))
        pending.extend(current.args)
        pending.append(current.__cause__)
        pending.append(current.__context__)
    return None


def describe_cause(exc: BaseException) -> str:
    """Summarize a transport failure without its URL.

    For example ``ConnectionError (ECONNREFUSED)``.
    """
    code = find_errno_code(exc)
    name = type(exc).__name__
    if code is None:
        return name
    return f"{name} ({code})"
