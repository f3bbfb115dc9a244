from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from taquilla.api.deps import CurrentUser, get_current_user, require_roles
from taquilla.core.clock import to_iso
from taquilla.db.session import get_db
from taquilla.db.transaction import retry_on_contention
from taquilla.models.event import Event
from taquilla.models.ticket_type import TicketType
from taquilla.schemas.order import CashSaleCreate, OrderOut, RedeemRequest, TicketOut, order_out, ticket_out
from taquilla.services.checkout_service import cash_sale, get_user_order
from taquilla.services.reservation_service import CartItem
from taquilla.services.ticket_service import redeem_ticket, render_ticket_pdf_bytes

router = APIRouter(tags=["orders"])


@router.get("/me/orders/{order_id}", response_model=OrderOut)
def my_order(order_id: str, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    o = get_user_order(db, order_id, user.id)
    if not o:
        raise HTTPException(status_code=404, detail="Order not found")
    return order_out(o)


@router.get("/me/orders/{order_id}/tickets/{ticket_id}/pdf")
def my_ticket_pdf(order_id: str, ticket_id: str, db: Session = Depends(get_db),
                  user: CurrentUser = Depends(get_current_user)):
    o = get_user_order(db, order_id, user.id)
    if not o:
        raise HTTPException(status_code=404, detail="Order not found")
    tickets = list(o.tickets)
    t = next((t for t in tickets if t.id == ticket_id), None)
    if not t:
        raise HTTPException(status_code=404, detail="Ticket not found")
    event = db.get(Event, o.event_id)
    tt = db.get(TicketType, t.ticket_type_id)
    pdf = render_ticket_pdf_bytes(
        event_name=event.name if event else "",
        ticket_type_name=tt.name if tt else "",
        redemption_code=t.qr_code,
        order_id=o.id,
        ticket_number=tickets.index(t) + 1,
        ticket_count=len(tickets),
        status=t.status,
        paid_at=to_iso(o.paid_at) or "",
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="ticket-{t.id}.pdf"'},
    )


@router.post("/ops/tickets/redeem", response_model=TicketOut)
def redeem(body: RedeemRequest, db: Session = Depends(get_db),
           user: CurrentUser = Depends(require_roles("admin", "ops", "staff"))):
    t = retry_on_contention(lambda: redeem_ticket(db, body.code.strip(), actor=user.id))
    return ticket_out(t)


@router.post("/ops/cash-sale", response_model=OrderOut, status_code=201)
def box_office_sale(body: CashSaleCreate, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(require_roles("admin", "ops", "staff"))):
    items = [CartItem(ticket_type_id=i.ticketTypeId, quantity=i.quantity) for i in body.items]
    o = cash_sale(db, user.id, body.buyerId.strip(), body.eventId, items)
    return order_out(o)
