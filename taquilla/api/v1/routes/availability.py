from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taquilla.core.clock import to_iso
from taquilla.db.session import get_db
from taquilla.schemas.availability import AvailabilityOut, EventAvailabilityOut, TicketTypeAvailabilityOut
from taquilla.services.inventory_service import get_availability, list_event_availability

router = APIRouter(tags=["availability"])


@router.get("/events/{event_id}/availability", response_model=EventAvailabilityOut)
def event_availability(event_id: str, db: Session = Depends(get_db)):
    rows = list_event_availability(db, event_id)
    return EventAvailabilityOut(
        eventId=event_id,
        ticketTypes=[
            TicketTypeAvailabilityOut(
                ticketTypeId=a.ticket_type_id,
                name=a.name,
                description=a.description,
                price=a.price,
                capacity=a.capacity,
                sold=a.sold,
                held=a.held,
                available=a.available,
                minPerOrder=a.min_per_order,
                maxPerOrder=a.max_per_order,
                saleStart=to_iso(a.sale_start),
                saleEnd=to_iso(a.sale_end),
                isAvailable=a.is_available,
                isSoldOut=a.is_sold_out,
            )
            for a in rows
        ],
    )


@router.get("/ticket-types/{ticket_type_id}/availability", response_model=AvailabilityOut)
def ticket_type_availability(ticket_type_id: str, db: Session = Depends(get_db)):
    a = get_availability(db, ticket_type_id)
    return AvailabilityOut(ticketTypeId=ticket_type_id, capacity=a.capacity, sold=a.sold, held=a.held,
                           available=a.available)
