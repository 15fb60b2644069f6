"""Domain error codes and exceptions raised by the inventory core."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Domain error codes."""

    NOT_FOUND = "NOT_FOUND"
    TICKET_TYPE_NOT_FOUND = "TICKET_TYPE_NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    INVALID_STATE = "INVALID_STATE"
    NOT_ACTIVE = "NOT_ACTIVE"
    ALREADY_CONVERTED = "ALREADY_CONVERTED"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    RESERVATION_EXPIRED = "RESERVATION_EXPIRED"
    EVENT_NOT_AVAILABLE = "EVENT_NOT_AVAILABLE"
    DUPLICATE_RESERVATION = "DUPLICATE_RESERVATION"
    QUANTITY_OUT_OF_RANGE = "QUANTITY_OUT_OF_RANGE"
    EXPIRED_HOLD = "EXPIRED_HOLD"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    """Raised when a reservation, order or ticket type does not exist."""

    def __init__(self, entity: str, entity_id: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> None:
        super().__init__(code=code, message=f"{entity} not found")
        self.entity_id = entity_id


class TicketTypeNotFoundError(NotFoundError):
    def __init__(self, ticket_type_id: int) -> None:
        super().__init__("Ticket type", str(ticket_type_id), code=ErrorCode.TICKET_TYPE_NOT_FOUND)


class ForbiddenError(DomainError):
    """Raised when a session touches a record it does not own.

    Callers that must not leak existence map this to the same response as
    a missing record.
    """

    def __init__(self, entity: str) -> None:
        super().__init__(
            code=ErrorCode.FORBIDDEN,
            message=f"You don't have permission to access this {entity.lower()}",
        )
        self.entity = entity


class InsufficientInventoryError(DomainError):
    """Raised when a hold asks for more units than are available."""

    def __init__(self, available: int) -> None:
        available = max(0, available)
        super().__init__(
            code=ErrorCode.INSUFFICIENT_INVENTORY,
            message=f"Only {available} tickets available",
        )
        self.available = available


class InvalidStateError(DomainError):
    """Raised when an operation is attempted from a terminal or wrong state."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_STATE) -> None:
        super().__init__(code=code, message=message)


class QuantityOutOfRangeError(DomainError):
    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.QUANTITY_OUT_OF_RANGE, message=message)


class ExpiredHoldError(DomainError):
    """Raised when a hold's TTL elapsed before it could be used."""

    def __init__(self, reservation_id: Optional[str] = None) -> None:
        super().__init__(code=ErrorCode.EXPIRED_HOLD, message="Reservation has expired")
        self.reservation_id = reservation_id
