"""Framework inventory exception classes."""

from __future__ import annotations


class InventoryError(Exception):
    """Base exception for all inventory errors."""


class TransportError(InventoryError):
    """Raised when a remote request fails or returns an unusable response."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        self.url = url
        self.message = message
        self.status_code = status_code
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{message}{status}: {url}")


class NotFoundError(TransportError):
    """Raised when a repository or git object does not exist (absorbed by callers)."""


class FatalTransportError(TransportError):
    """Raised when a top-level listing fails. Aborts the run."""


class DescriptorParseError(InventoryError):
    """Raised when descriptor content is not well-formed XML (absorbed by the walker)."""
