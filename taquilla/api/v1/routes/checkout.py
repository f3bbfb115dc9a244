from fastapi import APIRouter, Depends
from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from taquilla.api.deps import CurrentUser, checkout_rate_limit, get_current_user, get_payment_gateway
from taquilla.core.config import settings
from taquilla.core.errors import PaymentProviderUnavailable, ReservationNotActive
from taquilla.db.session import get_db
from taquilla.db.transaction import retry_on_contention
from taquilla.models.event import Event
from taquilla.models.ticket_type import TicketType
from taquilla.schemas.reservation import CheckoutOut, ReservationCreate, reservation_out
from taquilla.services.mercadopago_client import MercadoPagoError, build_preference_body
from taquilla.services.reservation_service import (
    CartItem,
    attach_payment_session,
    cancel_reservation,
    create_reservation,
    get_reservation,
)

router = APIRouter(tags=["checkout"])


@router.post("/checkout", response_model=CheckoutOut, dependencies=[Depends(checkout_rate_limit)])
def checkout(body: ReservationCreate, db: Session = Depends(get_db),
             user: CurrentUser = Depends(get_current_user), gateway=Depends(get_payment_gateway)):
    items = [CartItem(ticket_type_id=i.ticketTypeId, quantity=i.quantity) for i in body.items]
    r = retry_on_contention(lambda: create_reservation(db, user.id, body.eventId, items))

    event = db.get(Event, r.event_id)
    names = dict(db.execute(
        select(TicketType.id, TicketType.name).where(TicketType.id.in_([it.ticket_type_id for it in r.items]))
    ).all())
    currency = (event.currency if event else None) or settings.DEFAULT_CURRENCY
    pref_body = build_preference_body(r, names, event.organization_id if event else None, currency)
    db.rollback()

    try:
        pref = gateway.create_preference(pref_body)
    except MercadoPagoError as e:
        logger.error("checkout: preference for reservation {} failed: {}", r.id, e)
        retry_on_contention(lambda: cancel_reservation(db, r.id, actor="system"))
        raise PaymentProviderUnavailable(r.id)

    if not attach_payment_session(db, r.id, str(pref.get("id") or "")):
        current = get_reservation(db, r.id)
        raise ReservationNotActive(r.id, current.status)

    logger.info("checkout: reservation {} -> preference {}", r.id, pref.get("id"))
    return CheckoutOut(
        checkoutUrl=pref.get("init_point") or "",
        reservation=reservation_out(get_reservation(db, r.id)),
    )
