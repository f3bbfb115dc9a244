"""Checkout finalizer: turn a paid reservation into an order and its tickets."""
import uuid
from datetime import datetime

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from taquilla.core.clock import as_utc, to_iso, utcnow
from taquilla.core.config import settings
from taquilla.core.errors import Contention, ReservationExpired, ReservationNotActive, ReservationNotFound
from taquilla.db.transaction import atomic, retry_on_contention
from taquilla.models.event import Event
from taquilla.models.order import Order
from taquilla.models.reservation import ACTIVE, COMPLETED, Reservation, ReservationItem
from taquilla.models.ticket import VALID, Ticket
from taquilla.models.ticket_type import TicketType
from taquilla.services.audit_service import log_audit
from taquilla.services.reservation_service import CartItem, cancel_reservation, create_reservation
from taquilla.services.ticket_service import new_redemption_code


def finalize(db: Session, reservation_id: str, provider_payment_ref: str, platform: str = "web",
             currency: str | None = None, now: datetime | None = None) -> Order:
    """Convert an active, unexpired reservation into an Order with one Ticket per unit.

    Idempotent: a reservation already completed returns its existing order.
    The reservation row is locked first, so this serializes with the expiry
    sweep and with cancellation on the same reservation.
    """
    now = now or utcnow()
    with atomic(db):
        r = db.execute(
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not r:
            raise ReservationNotFound(reservation_id)

        if r.status == COMPLETED:
            existing = db.execute(select(Order).where(Order.reservation_id == reservation_id)).scalar_one()
            if provider_payment_ref and existing.payment_provider_ref != provider_payment_ref:
                logger.warning("reservation {} already paid by {}, ignoring payment {}",
                               reservation_id, existing.payment_provider_ref, provider_payment_ref)
            return existing
        if r.status != ACTIVE:
            raise ReservationNotActive(reservation_id, r.status)
        if now > as_utc(r.expires_at):
            raise ReservationExpired(reservation_id, to_iso(r.expires_at))

        res = db.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status == ACTIVE)
            .values(status=COMPLETED, closed_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.refresh(r)
            raise ReservationNotActive(reservation_id, r.status)

        items = db.execute(
            select(ReservationItem)
            .where(ReservationItem.reservation_id == reservation_id)
            .order_by(ReservationItem.position)
        ).scalars().all()

        for item in sorted(items, key=lambda i: i.ticket_type_id):
            moved = db.execute(
                update(TicketType)
                .where(TicketType.id == item.ticket_type_id, TicketType.reserved_count >= item.quantity)
                .values(
                    reserved_count=TicketType.reserved_count - item.quantity,
                    sold_count=TicketType.sold_count + item.quantity,
                )
                .execution_options(synchronize_session=False)
            )
            if moved.rowcount != 1:
                raise RuntimeError(
                    f"held count of ticket type {item.ticket_type_id} is below {item.quantity} "
                    f"for reservation {reservation_id}"
                )

        if currency is None:
            event = db.get(Event, r.event_id)
            currency = event.currency if event and event.currency else settings.DEFAULT_CURRENCY

        order = Order(
            id=str(uuid.uuid4()),
            reservation_id=reservation_id,
            user_id=r.user_id,
            event_id=r.event_id,
            total_amount=int(r.total_amount),
            currency=currency,
            platform=platform or "web",
            payment_provider_ref=provider_payment_ref or "",
            paid_at=now,
            created_at=now,
        )
        position = 0
        tickets = []
        for item in items:
            for _ in range(item.quantity):
                tickets.append(Ticket(
                    id=str(uuid.uuid4()),
                    ticket_type_id=item.ticket_type_id,
                    position=position,
                    qr_code=new_redemption_code(),
                    status=VALID,
                    created_at=now,
                ))
                position += 1
        order.tickets = tickets
        db.add(order)

        log_audit(db, actor_user_id="system", action="reservation.completed", entity_type="reservation",
                  entity_id=reservation_id,
                  details={"order_id": order.id, "payment_ref": provider_payment_ref, "tickets": len(tickets)})

    logger.info("reservation {} finalized: order={} tickets={} payment={}",
                reservation_id, order.id, len(tickets), provider_payment_ref)
    return order


def get_user_order(db: Session, order_id: str, user_id: str) -> Order | None:
    o = db.get(Order, order_id, populate_existing=True)
    if not o or o.user_id != user_id:
        return None
    return o


def cash_sale(db: Session, seller_id: str, buyer_id: str, event_id: str, items: list[CartItem],
              now: datetime | None = None) -> Order:
    """Sell at the box office: hold for the buyer and settle in cash right away.

    Runs through the same hold and finalize paths as an online sale, so the
    inventory counters and tickets are identical. If settling times out the hold is
    released instead of waiting for the sweep.
    """
    r = retry_on_contention(lambda: create_reservation(db, buyer_id, event_id, items, now=now,
                                                       payment_processor="cash"))
    try:
        order = retry_on_contention(lambda: finalize(db, r.id, f"cash:{seller_id}", platform="cash", now=now))
    except Contention:
        logger.exception("cash sale: reservation {} could not be settled, releasing", r.id)
        retry_on_contention(lambda: cancel_reservation(db, r.id, actor=seller_id, now=now))
        raise
    with atomic(db):
        log_audit(db, actor_user_id=seller_id, action="order.cash_sale", entity_type="order", entity_id=order.id,
                  details={"reservation_id": r.id, "buyer_id": buyer_id, "total": int(order.total_amount)})
    logger.info("cash sale by {}: order {} for buyer {}", seller_id, order.id, buyer_id)
    return order
