"""Route group exports."""

from . import health, pickups

__all__ = ["health", "pickups"]
