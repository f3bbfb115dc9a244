from pydantic import BaseModel
from typing import List, Optional


class AvailabilityOut(BaseModel):
    ticketTypeId: str
    capacity: int
    sold: int
    held: int
    available: int


class TicketTypeAvailabilityOut(BaseModel):
    ticketTypeId: str
    name: str
    description: Optional[str] = None
    price: int
    capacity: int
    sold: int
    held: int
    available: int
    minPerOrder: int
    maxPerOrder: int
    saleStart: Optional[str] = None
    saleEnd: Optional[str] = None
    isAvailable: bool
    isSoldOut: bool


class EventAvailabilityOut(BaseModel):
    eventId: str
    ticketTypes: List[TicketTypeAvailabilityOut]
