"""Core utilities: exceptions and middleware."""

from washpos.core.exceptions import (
    AppException,
    InvalidBookingStatus,
    NotFoundError,
    PersistenceError,
    RecordStoreError,
    UnknownCollectionError,
    ValidationError,
)

__all__ = [
    "AppException",
    "InvalidBookingStatus",
    "NotFoundError",
    "PersistenceError",
    "RecordStoreError",
    "UnknownCollectionError",
    "ValidationError",
]
