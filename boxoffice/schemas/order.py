from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from boxoffice.models.order import OrderStatus, PaymentMethod
from boxoffice.models.ticket import TicketStatus


class BuyerInfo(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class TicketHolder(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class PurchaseRequest(BaseModel):
    buyer: BuyerInfo
    ticket_holders: list[TicketHolder] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CARD


class ManualPaymentRequest(BaseModel):
    reference: Optional[str] = None


class SettleRequest(BaseModel):
    outcome: str = Field(..., pattern="^(success|failed)$")
    reference: Optional[str] = None


class OrderItemResponse(BaseModel):
    ticket_type_id: int
    reservation_id: Optional[str]
    quantity: int
    unit_price: Decimal

    class Config:
        from_attributes = True


class TicketResponse(BaseModel):
    id: int
    ticket_type_id: int
    holder_name: str
    holder_email: str
    status: TicketStatus

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: str
    status: OrderStatus
    amount: Decimal
    payment_method: PaymentMethod
    created_at: datetime
    settled_at: Optional[datetime] = None
    items: list[OrderItemResponse]
    tickets: list[TicketResponse] = []

    class Config:
        from_attributes = True


class CheckoutResponse(BaseModel):
    order_id: str
    checkout_url: str


class BulkPurchaseRequest(PurchaseRequest):
    reservation_ids: list[str] = Field(..., min_length=1)
