"""
Exceptions raised while ingesting Home Assistant state events.
"""
from typing import List, Optional


class ConfigurationError(Exception):
    """Raised when required configuration is missing."""
    pass


class MalformedEventError(ValueError):
    """Raised when an event payload cannot be parsed."""
    pass


class UnknownModelError(LookupError):
    """Raised when a device class has no DTDL model identifier."""

    def __init__(self, device_class: Optional[str]):
        self.device_class = device_class
        super().__init__(f"No model identifier configured for device class '{device_class}'")


class TwinStoreError(Exception):
    """Raised when Azure Digital Twins rejects an operation for a twin."""

    def __init__(
        self,
        twin_id: str,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None
    ):
        self.twin_id = twin_id
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(f"Twin '{twin_id}': {message}")


class BatchProcessingError(Exception):
    """
    Raised at the end of a batch when more than one event failed.

    Every individual error is kept in ``errors`` in input order.
    """

    def __init__(self, errors: List[Exception]):
        self.errors = list(errors)
        summary = "; ".join(f"{type(e).__name__}: {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} events failed: {summary}")
