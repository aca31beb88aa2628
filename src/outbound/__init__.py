"""Configurable clients for external JSON HTTP services."""

from outbound.networking import ServiceClient, ServiceConfiguration, service

__all__ = ["ServiceClient", "ServiceConfiguration", "service"]
