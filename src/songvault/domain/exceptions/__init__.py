"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # This is your base class - DON'T raise it directly! Use a specific subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when input violates a domain rule (e.g. relative scan path)."""

    pass


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: confirming a relink suggestion whose suggested file has vanished
    again before the user clicked "confirm".
    """

    pass


class DuplicateEntityException(DomainException):
    """Raised when an operation would create a second row for a unique key."""

    # Listen, the catalog has exactly one UNIQUE business key: file_path.
    # Relinking onto a path that another row already owns raises this instead of
    # letting the IntegrityError bubble up from the store.
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} already exists")
        self.entity_type = entity_type
        self.entity_id = entity_id


class MetadataExtractionException(DomainException):
    """Raised by the metadata extractor when a file's tags cannot be read.

    Recoverable: the scanner logs it and treats the file as a no-op.
    """

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(f"Cannot read metadata from {file_path}: {reason}")
        self.file_path = file_path
        self.reason = reason


class ImmutableFieldException(DomainException):
    """Raised when code tries to change stable_id or an original_* column.

    Hey future me - if you see this in logs, some code path built an UPDATE that
    touches write-once identity columns. Fix the caller, never the guard!
    """

    def __init__(self, field_name: str, entity_id: Any) -> None:
        super().__init__(
            f"Field '{field_name}' of catalog entry {entity_id} is write-once"
        )
        self.field_name = field_name
        self.entity_id = entity_id


class ScanInProgressException(DomainException):
    """Raised when a scan pass is started while another one holds the store lock."""

    def __init__(self) -> None:
        super().__init__("A library scan is already running for this catalog")


__all__ = [
    "DomainException",
    "DuplicateEntityException",
    "EntityNotFoundException",
    "ImmutableFieldException",
    "InvalidStateException",
    "MetadataExtractionException",
    "ScanInProgressException",
    "ValidationException",
]
