"""Upstream booking API clients."""

from .rezdy_client import RezdyClient

__all__ = ["RezdyClient"]
