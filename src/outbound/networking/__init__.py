"""Outbound HTTP client for JSON services."""

from .client import ServiceClient, service
from .config import ClientVariant, ServiceConfiguration
from .errors import (
    ConfigurationError,
    ErrorKind,
    HttpStatusError,
    ParseError,
    ServiceDisabledError,
    ServiceError,
    TransportError,
)
from .types import Err, Ok, Result

__all__ = [
    "ClientVariant",
    "ConfigurationError",
    "Err",
    "ErrorKind",
    "HttpStatusError",
    "Ok",
    "ParseError",
    "Result",
    "ServiceClient",
    "ServiceConfiguration",
    "ServiceDisabledError",
    "ServiceError",
    "TransportError",
    "service",
]
