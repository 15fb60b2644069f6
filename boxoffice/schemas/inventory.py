from pydantic import BaseModel
from decimal import Decimal


class InventorySummary(BaseModel):
    ticket_type_id: int
    event_id: int
    name: str
    price: Decimal
    capacity: int
    sold: int
    reserved: int
    pending: int
    available: int


class EventInventory(BaseModel):
    event_id: int
    ticket_types: list[InventorySummary]
