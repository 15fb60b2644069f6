from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from boxoffice.database import Base
import enum


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    status = Column(Enum(EventStatus), default=EventStatus.PUBLISHED, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    ticket_types = relationship("TicketType", back_populates="event", order_by="TicketType.id")


class TicketType(Base):
    __tablename__ = "ticket_types"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    capacity = Column(Integer, nullable=False)
    # Only written by settlement; see SettlementService
    sold = Column(Integer, nullable=False, default=0)
    max_per_order = Column(Integer, nullable=False, default=10)
    created_at = Column(DateTime, server_default=func.now())

    event = relationship("Event", back_populates="ticket_types")
    reservations = relationship("Reservation", back_populates="ticket_type")
