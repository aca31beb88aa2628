"""Request execution for outbound JSON services.

A ``ServiceClient`` is bound to one ``ServiceConfiguration``. Each call issues
a single GET, lets the transport adapter handle retries, and maps every
outcome to a ``Result``. The configured timeout is a deadline for each
attempt, covering connect, headers and body. When the caller signals
do-not-track, log lines and error messages only ever show the bare base URL.
"""

from __future__ import annotations

import socket
import threading
import time
from typing import Any, Callable, Mapping

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from urllib3.util.timeout import Timeout

from outbound.observability import get_logger

from .config import ServiceConfiguration
from .errors import (
    ConfigurationError,
    HttpStatusError,
    ParseError,
    ServiceDisabledError,
    ServiceError,
    TransportError,
)
from .privacy import is_do_not_track, synthesize_url
from .types import Err, Ok, Result

JSON_CONTENT_TYPE = "application/json"

# Statuses the transport retries before reporting the final response.
RETRYABLE_STATUSES = frozenset(
    {408, 413, 429, 500, 502, 503, 504, 521, 522, 524}
)

Callback = Callable[..., Any]


class AttemptRetry(Retry):
    """Retry policy that records when each retried attempt starts.

    urllib3 hands a fresh instance to every retry, so ``attempt_started``
    belongs to the attempt that instance drives. It stays ``None`` for the
    first attempt.
    """

    attempt_started: float | None = None

    def sleep(self, response: Any = None) -> None:
        super().sleep(response)
        self.attempt_started = time.monotonic()


def build_retry(retries: int) -> Retry:
    """Retry policy mounted on the session adapter."""
    return AttemptRetry(
        total=retries,
        backoff_factor=0,
        status_forcelist=RETRYABLE_STATUSES,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
        respect_retry_after_header=False,
    )


def build_session(config: ServiceConfiguration) -> requests.Session:
    """Create the keep-alive session shared by every call of one client."""
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=build_retry(config.retries))
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _is_json(response: requests.Response) -> bool:
    content_type = response.headers.get("Content-Type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == JSON_CONTENT_TYPE


def _attempts(response: requests.Response) -> int | None:
    retries = getattr(response.raw, "retries", None)
    history = getattr(retries, "history", None)
    if isinstance(history, tuple):
        return len(history) + 1
    return None


def _attempt_started(response: requests.Response, dispatched: float) -> float:
    retries = getattr(response.raw, "retries", None)
    started = getattr(retries, "attempt_started", None)
    if isinstance(started, float):
        return started
    return dispatched


def _abort(response: requests.Response) -> None:
    """Shut down the socket under a response so a blocked read returns."""
    connection = getattr(response.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if isinstance(sock, socket.socket):
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already closed by the peer or the pool.
            return


def read_body(response: requests.Response, deadline: float) -> None:
    """Read a streamed response body, failing once ``deadline`` passes.

    Raises:
        requests.exceptions.ReadTimeout: the body did not arrive in time.
    """
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        response.close()
        raise requests.exceptions.ReadTimeout(
            "read timed out", response=response
        )

    expired = threading.Event()

    def expire() -> None:
        expired.set()
        _abort(response)

    timer = threading.Timer(remaining, expire)
    timer.daemon = True
    timer.start()
    try:
        response.content  # reads and caches the body
    except requests.exceptions.RequestException as exc:
        if not expired.is_set():
            raise
        response.close()
        raise requests.exceptions.ReadTimeout(
            "read timed out", response=response
        ) from exc
    finally:
        timer.cancel()
    if expired.is_set():
        response.close()
        raise requests.exceptions.ReadTimeout(
            "read timed out", response=response
        )


class ServiceClient:
    """Executes GET requests against one configured service.

    Use ``call`` when only the incoming request context is available and
    ``call_with_response`` when the providers also need the response context.
    Both return a ``Result`` and never raise for request failures. An optional
    ``callback`` receives ``(error, value[, metadata])`` exactly once.
    """

    def __init__(
        self,
        config: ServiceConfiguration,
        *,
        logger: Any = None,
        session: requests.Session | None = None,
    ) -> None:
        if not isinstance(config, ServiceConfiguration):
            raise ConfigurationError(
                "config should be an instance of ServiceConfiguration"
            )
        self._config = config
        if logger is None:
            logger = get_logger(config.name).bind(service=config.name)
        self._log = logger
        self._session: requests.Session | None = None
        self._owns_session = False

        if not config.enabled:
            self._log.warning(f"{config.name} service disabled")
            return

        self._log.info(f"using {config.name} service at {config.base_url}")
        if session is None:
            session = build_session(config)
            self._owns_session = True
        self._session = session

    @property
    def config(self) -> ServiceConfiguration:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._session is not None

    def close(self) -> None:
        """Release pooled connections owned by this client."""
        if self._session is not None and self._owns_session:
            self._session.close()

    def __enter__(self) -> ServiceClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def call(
        self, request_context: Any, *, callback: Callback | None = None
    ) -> Result[Any, ServiceError]:
        """Call the service with the request context only."""
        return self._execute(request_context, None, callback)

    def call_with_response(
        self,
        request_context: Any,
        response_context: Any,
        *,
        callback: Callback | None = None,
    ) -> Result[Any, ServiceError]:
        """Call the service with both request and response contexts."""
        return self._execute(request_context, response_context, callback)

    def _execute(
        self,
        request_context: Any,
        response_context: Any,
        callback: Callback | None,
    ) -> Result[Any, ServiceError]:
        if self._session is None:
            result: Result[Any, ServiceError] = Err(
                ServiceDisabledError(self._config.name),
                meta={"service": self._config.name},
            )
        else:
            result = self._request(
                self._session, request_context, response_context
            )
        if callback is not None:
            self._notify(callback, result)
        return result

    def _send(
        self,
        session: requests.Session,
        url: str | None,
        headers: Mapping[str, str],
        parameters: Mapping[str, Any],
        dispatched: float,
    ) -> requests.Response:
        """Issue the GET and read its body within the attempt deadline."""
        response = session.get(
            url,
            headers=headers,
            params=parameters,
            timeout=Timeout(total=self._config.timeout_seconds),
            stream=True,
        )
        deadline = (
            _attempt_started(response, dispatched)
            + self._config.timeout_seconds
        )
        read_body(response, deadline)
        return response

    def _request(
        self,
        session: requests.Session,
        request_context: Any,
        response_context: Any,
    ) -> Result[Any, ServiceError]:
        config = self._config
        do_not_track = is_do_not_track(request_context)
        parameters = config.get_parameters(request_context, response_context)
        headers = config.get_headers(request_context, response_context)
        if do_not_track:
            headers["dnt"] = "1"
        headers["Accept"] = JSON_CONTENT_TYPE

        url = config.get_url(request_context)
        if do_not_track:
            url_for_logging = config.base_url or ""
        else:
            url_for_logging = synthesize_url(url, parameters)

        if config.variant.log_requests:
            self._log.debug(f"{config.name}: {url_for_logging}")

        dispatched = time.monotonic()
        try:
            response = self._send(
                session, url, headers, parameters, dispatched
            )
        except requests.exceptions.RequestException as exc:
            error = TransportError(
                url_for_logging, exc, do_not_track=do_not_track
            )
            self._log.error(str(error))
            return Err(
                error,
                meta=self._build_meta(url_for_logging, do_not_track),
            )

        meta = self._build_meta(
            url_for_logging,
            do_not_track,
            response=response,
            elapsed_ms=(time.monotonic() - dispatched) * 1000,
        )

        if not 200 <= response.status_code < 300:
            status_error = HttpStatusError(
                url_for_logging,
                response.status_code,
                response.text,
                do_not_track=do_not_track,
            )
            self._log.error(str(status_error))
            return Err(status_error, meta=meta)

        if _is_json(response):
            try:
                return Ok(response.json(), meta=meta)
            except ValueError:
                pass

        parse_error = ParseError(
            url_for_logging, response.text, do_not_track=do_not_track
        )
        self._log.error(str(parse_error))
        return Err(parse_error, meta=meta)

    def _build_meta(
        self,
        url_for_logging: str,
        do_not_track: bool,
        *,
        response: requests.Response | None = None,
        elapsed_ms: float | None = None,
    ) -> dict[str, Any]:
        """Construct metadata dictionary for a finished request."""
        meta: dict[str, Any] = {
            "service": self._config.name,
            "url": url_for_logging,
            "do_not_track": do_not_track,
        }
        if response is not None:
            meta["status"] = response.status_code
            attempts = _attempts(response)
            if attempts is not None:
                meta["attempts"] = attempts
        if elapsed_ms is not None and self._config.variant.response_metadata:
            meta["response_time"] = elapsed_ms
        return meta

    def _notify(
        self, callback: Callback, result: Result[Any, ServiceError]
    ) -> None:
        """Invoke an error-first callback with the outcome of one call.

        Metadata is only passed along with a received 2xx body, whether it
        parsed or not.
        """
        if result.error is None:
            error = None
        else:
            error = result.error.callback_value
        metadata = None
        if result.ok or isinstance(result.error, ParseError):
            metadata = self._callback_metadata(result.meta)
        if metadata is None:
            callback(error, result.value)
        else:
            callback(error, result.value, metadata)

    def _callback_metadata(
        self, meta: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        if "response_time" not in meta:
            return None
        return {"response_time": meta["response_time"]}


def service(
    config: ServiceConfiguration,
    *,
    logger: Any = None,
    session: requests.Session | None = None,
) -> ServiceClient:
    """Create a client bound to ``config``.

    Raises:
        ConfigurationError: ``config`` is not a ``ServiceConfiguration``.
    """
    return ServiceClient(config, logger=logger, session=session)
