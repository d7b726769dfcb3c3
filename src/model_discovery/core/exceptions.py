"""Custom exceptions for the model discovery service."""


class ModelDiscoveryError(Exception):
    """Base exception for model discovery errors."""

    pass


class CatalogError(ModelDiscoveryError):
    """Raised when the remote model catalog cannot be queried."""

    pass


class CatalogTimeoutError(CatalogError):
    """Raised when the remote catalog does not answer in time."""

    pass


class CatalogResponseError(CatalogError):
    """Raised when the remote catalog answers with an error status or bad payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
