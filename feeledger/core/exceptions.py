from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    retryable = False

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    """Caller input rejected before any external call was made."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.field = field


class NotFoundError(ServiceError):
    """Unknown student or class."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class NetworkError(ServiceError):
    """Transient I/O failure talking to an external service. Safe to retry reads."""

    retryable = True

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class PersistenceError(ServiceError):
    """The ledger refused a write. Nothing was persisted."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class AmbiguousResidenceWarning(UserWarning):
    """Student has no residence type on record; Day was assumed."""
