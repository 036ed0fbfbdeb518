"""Exceptions raised by the pickup resolution engine."""

from __future__ import annotations


class PickupEngineError(Exception):
    """Base class for engine errors."""


class ResolutionError(PickupEngineError):
    """Pickup data for a product could not be obtained."""

    def __init__(self, product_code: str, message: str) -> None:
        super().__init__(f"{product_code}: {message}")
        self.product_code = product_code


class UpstreamError(ResolutionError):
    """The upstream booking API failed, timed out or returned an unusable payload."""


class StorageWriteError(PickupEngineError):
    """A pickup document could not be written after all retries."""

    def __init__(self, product_code: str, attempts: int, cause: BaseException | None = None) -> None:
        message = f"Failed to save pickup data for {product_code} after {attempts} attempts"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.product_code = product_code
        self.attempts = attempts
