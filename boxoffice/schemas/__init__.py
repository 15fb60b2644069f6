from boxoffice.schemas.reservation import (
    ReservationCreate, BulkReservationCreate, ReservationExtend,
    ReservationResponse, ReservationTimerResponse
)
from boxoffice.schemas.order import BuyerInfo, TicketHolder, PurchaseRequest, OrderResponse
from boxoffice.schemas.inventory import InventorySummary, EventInventory

__all__ = [
    "ReservationCreate", "BulkReservationCreate", "ReservationExtend",
    "ReservationResponse", "ReservationTimerResponse",
    "BuyerInfo", "TicketHolder", "PurchaseRequest", "OrderResponse",
    "InventorySummary", "EventInventory"
]
