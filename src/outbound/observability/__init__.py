"""Logging setup for outbound service clients."""

from outbound.observability.logging import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
