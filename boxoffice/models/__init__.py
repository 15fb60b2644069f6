from boxoffice.models.event import Event, EventStatus, TicketType
from boxoffice.models.reservation import Reservation, ReservationStatus
from boxoffice.models.order import Order, OrderItem, OrderStatus, PaymentMethod
from boxoffice.models.ticket import Ticket, TicketStatus

__all__ = [
    "Event", "EventStatus", "TicketType",
    "Reservation", "ReservationStatus",
    "Order", "OrderItem", "OrderStatus", "PaymentMethod",
    "Ticket", "TicketStatus",
]
