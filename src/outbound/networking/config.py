"""Configuration models for outbound services."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, cast

from .errors import ConfigurationError

DEFAULT_RETRIES = 3

ParameterProvider = Callable[[Any, Any], Mapping[str, Any]]
HeaderProvider = Callable[[Any, Any], "Mapping[str, str] | None"]
UrlResolver = Callable[[Any], str]


class ClientVariant(Enum):
    """Behavioral profile of a service client.

    ``SERVICE`` logs every request at debug level and reports
    ``response_time`` metadata; ``HTTP_JSON`` is the quieter profile with a
    longer default timeout.
    """

    SERVICE = (250, True, True)
    HTTP_JSON = (1000, False, False)

    def __init__(
        self,
        default_timeout_ms: int,
        log_requests: bool,
        response_metadata: bool,
    ) -> None:
        self.default_timeout_ms = default_timeout_ms
        self.log_requests = log_requests
        self.response_metadata = response_metadata


def _no_parameters(
    request_context: Any, response_context: Any
) -> Mapping[str, Any]:
    return MappingProxyType({})


def _no_headers(
    request_context: Any, response_context: Any
) -> Mapping[str, str]:
    return MappingProxyType({})


def _normalize_base_url(url: str | None) -> str | None:
    if url and not url.endswith("/"):
        return url + "/"
    return url


@dataclass(frozen=True)
class ServiceConfiguration:
    """Static settings for one remote JSON endpoint.

    Endpoint-specific behavior is injected through ``parameters``,
    ``headers`` and ``url`` rather than by subclassing. ``timeout`` is in
    milliseconds; when omitted it falls back to the variant default.
    """

    name: str
    base_url: str | None = None
    timeout: int | None = None
    retries: int = DEFAULT_RETRIES
    parameters: ParameterProvider = field(
        default=_no_parameters, repr=False
    )
    headers: HeaderProvider = field(default=_no_headers, repr=False)
    url: UrlResolver | None = field(default=None, repr=False)
    variant: ClientVariant = ClientVariant.SERVICE

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("name is required")
        if self.retries is None:
            object.__setattr__(self, "retries", DEFAULT_RETRIES)
        if self.retries < 0:
            raise ConfigurationError("retries must be >= 0")
        if self.timeout is None:
            object.__setattr__(
                self, "timeout", self.variant.default_timeout_ms
            )
        elif self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0 when provided")

        object.__setattr__(
            self, "base_url", _normalize_base_url(self.base_url)
        )

    @classmethod
    def from_mapping(
        cls,
        name: str,
        config: Mapping[str, Any] | None,
        *,
        parameters: ParameterProvider | None = None,
        headers: HeaderProvider | None = None,
        url: UrlResolver | None = None,
        variant: ClientVariant = ClientVariant.SERVICE,
    ) -> ServiceConfiguration:
        """Build a configuration from a ``{url, timeout, retries}`` mapping."""
        config = config or {}
        return cls(
            name=name,
            base_url=config.get("url"),
            timeout=config.get("timeout"),
            retries=config.get("retries", DEFAULT_RETRIES),
            parameters=parameters or _no_parameters,
            headers=headers or _no_headers,
            url=url,
            variant=variant,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    @property
    def timeout_seconds(self) -> float:
        return cast(int, self.timeout) / 1000.0

    def get_url(self, request_context: Any = None) -> str | None:
        """Resolve the target URL, defaulting to the base URL."""
        if self.url is not None:
            return self.url(request_context)
        return self.base_url

    def get_parameters(
        self, request_context: Any = None, response_context: Any = None
    ) -> dict[str, Any]:
        return dict(self.parameters(request_context, response_context) or {})

    def get_headers(
        self, request_context: Any = None, response_context: Any = None
    ) -> dict[str, str]:
        return dict(self.headers(request_context, response_context) or {})
