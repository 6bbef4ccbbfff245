"""Custom application exceptions."""

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed") -> None:
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class InvalidBookingStatus(AppException):
    """Invalid booking status for operation."""

    def __init__(self, detail: str = "This operation is not allowed for the current booking status") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class PersistenceError(AppException):
    """Booking store could not be written."""

    def __init__(self, detail: str = "The booking store is unavailable") -> None:
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


class RecordStoreError(Exception):
    """Raised by record store implementations when a read or write fails."""

    def __init__(self, collection: str, operation: str, detail: str | None = None) -> None:
        self.collection = collection
        self.operation = operation
        message = f"Record store {operation} on '{collection}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class UnknownCollectionError(RecordStoreError):
    """Raised when a collection name has no backing table."""

    def __init__(self, collection: str) -> None:
        super().__init__(collection, "lookup", "unknown collection")
