from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from boxoffice.models.reservation import ReservationStatus


class ReservationCreate(BaseModel):
    ticket_type_id: int
    quantity: int = Field(..., ge=1)
    expiration_minutes: Optional[int] = Field(None, ge=1)


class BulkReservationItem(BaseModel):
    ticket_type_id: int
    quantity: int = Field(..., ge=1)


class BulkReservationCreate(BaseModel):
    reservations: list[BulkReservationItem] = Field(..., min_length=1)
    expiration_minutes: Optional[int] = Field(None, ge=1)


class ReservationExtend(BaseModel):
    additional_minutes: int = Field(..., ge=1)


class ReservationResponse(BaseModel):
    id: str
    ticket_type_id: int
    quantity: int
    unit_price: Decimal
    status: ReservationStatus
    created_at: datetime
    expires_at: datetime
    order_id: Optional[str] = None

    class Config:
        from_attributes = True


class ReservationTimerResponse(BaseModel):
    reservation: ReservationResponse
    remaining_seconds: int
    is_expired: bool


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]


class CancelAllResponse(BaseModel):
    cancelled: int
