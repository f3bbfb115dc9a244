from pydantic import BaseModel
from typing import List, Optional

from taquilla.core.clock import to_iso
from taquilla.schemas.reservation import CartItemIn


class TicketOut(BaseModel):
    ticketId: str
    ticketTypeId: str
    code: str
    status: str
    usedAt: Optional[str] = None


class OrderOut(BaseModel):
    orderId: str
    reservationId: str
    eventId: str
    totalAmount: int
    currency: str
    platform: str
    paymentRef: str
    paidAt: Optional[str] = None
    tickets: List[TicketOut] = []


def ticket_out(t) -> TicketOut:
    return TicketOut(ticketId=t.id, ticketTypeId=t.ticket_type_id, code=t.qr_code, status=t.status,
                     usedAt=to_iso(t.used_at))


def order_out(o) -> OrderOut:
    return OrderOut(
        orderId=o.id,
        reservationId=o.reservation_id,
        eventId=o.event_id,
        totalAmount=int(o.total_amount),
        currency=o.currency,
        platform=o.platform,
        paymentRef=o.payment_provider_ref or "",
        paidAt=to_iso(o.paid_at),
        tickets=[ticket_out(t) for t in o.tickets],
    )


class RedeemRequest(BaseModel):
    code: str


class CashSaleCreate(BaseModel):
    eventId: str
    buyerId: str
    items: List[CartItemIn]
