from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from boxoffice.database import atomic, get_db
from boxoffice.schemas.inventory import EventInventory, InventorySummary
from boxoffice.services import clock
from boxoffice.services.inventory import InventoryLedger

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/ticket-types/{ticket_type_id}", response_model=InventorySummary)
def ticket_type_inventory(ticket_type_id: int, db: Session = Depends(get_db)):
    with atomic(db):
        return InventoryLedger.summary(db, ticket_type_id, clock.now(db))


@router.get("/events/{event_id}", response_model=EventInventory)
def event_inventory(event_id: int, db: Session = Depends(get_db)):
    with atomic(db):
        ticket_types = InventoryLedger.summary_for_event(db, event_id, clock.now(db))
    return {"event_id": event_id, "ticket_types": ticket_types}
