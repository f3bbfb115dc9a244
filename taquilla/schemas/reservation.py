from pydantic import BaseModel
from typing import List, Optional

from taquilla.core.clock import to_iso


class CartItemIn(BaseModel):
    ticketTypeId: str
    quantity: int


class ReservationCreate(BaseModel):
    eventId: str
    items: List[CartItemIn]


class ReservationItemOut(BaseModel):
    ticketTypeId: str
    quantity: int
    unitPrice: int


class ReservationOut(BaseModel):
    reservationId: str
    eventId: str
    status: str
    expiresAt: Optional[str] = None
    totalAmount: int
    paymentSessionId: Optional[str] = None
    items: List[ReservationItemOut] = []


def reservation_out(r) -> ReservationOut:
    return ReservationOut(
        reservationId=r.id,
        eventId=r.event_id,
        status=r.status,
        expiresAt=to_iso(r.expires_at),
        totalAmount=int(r.total_amount),
        paymentSessionId=r.payment_session_id,
        items=[
            ReservationItemOut(ticketTypeId=it.ticket_type_id, quantity=it.quantity, unitPrice=it.unit_price)
            for it in r.items
        ],
    )


class CheckoutOut(BaseModel):
    checkoutUrl: str
    reservation: ReservationOut
