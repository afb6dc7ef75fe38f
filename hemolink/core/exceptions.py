# hemolink/core/exceptions.py
"""
Domain error taxonomy.

Services raise these; the request layer maps them to HTTP responses through
the handler registered in hemolink.main. Background jobs catch them per entity.
"""

from typing import Any


class DomainError(Exception):
    status_code: int = 400

    def __init__(self, message: str, *, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail if detail is not None else message


class ValidationError(DomainError):
    """Malformed input shape. Carries field-level detail when available."""

    status_code = 400

    def __init__(self, message: str, *, field: str | None = None) -> None:
        detail = {"field": field, "message": message} if field else message
        super().__init__(message, detail=detail)
        self.field = field


class NotFoundError(DomainError):
    """Referenced ledger / item / proposal / hospital does not exist."""

    status_code = 404


class ConflictError(DomainError):
    """State-machine violation (item not AVAILABLE, proposal already resolved, ...)."""

    status_code = 409


class UpstreamError(DomainError):
    """An external collaborator (geocoder, notifier) failed."""

    status_code = 502


class GeocodingError(UpstreamError):
    """
    The geocoder could not resolve a postal code.

    Surfaced to callers as an invalid postal code, not as a server fault.
    """

    status_code = 400

    def __init__(self, message: str = "Invalid postal code") -> None:
        super().__init__(message, detail={"field": "postal_code", "message": message})
