"""Durable storage for pickup data."""

from .filesystem import FileStorage
from .pickup_store import PickupFetcher, PickupStore, file_name_for

__all__ = ["FileStorage", "PickupFetcher", "PickupStore", "file_name_for"]
