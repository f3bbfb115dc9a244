"""Reservation engine: atomic inventory holds, cancellation and reservation reads.

Every write here runs inside ``atomic()``; ticket-type rows are always locked in
ascending id order and a reservation row is always locked before its ticket types.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from taquilla.core.clock import utcnow
from taquilla.core.config import settings
from taquilla.core.errors import (
    EmptyCart,
    EventUnavailable,
    InsufficientInventory,
    InvalidQuantity,
    ReservationNotActive,
    ReservationNotFound,
    TicketTypeUnavailable,
)
from taquilla.db.transaction import atomic
from taquilla.models.event import EVENT_ACTIVE, Event
from taquilla.models.reservation import ACTIVE, CANCELLED, Reservation, ReservationItem
from taquilla.models.ticket_type import TicketType
from taquilla.services.audit_service import log_audit
from taquilla.services.inventory_service import available_units, order_limits, sale_window_open


@dataclass(frozen=True)
class CartItem:
    ticket_type_id: str
    quantity: int


def _is_positive_int(q) -> bool:
    return isinstance(q, int) and not isinstance(q, bool) and q >= 1


def create_reservation(db: Session, user_id: str, event_id: str, items: list[CartItem],
                       now: datetime | None = None, ttl_seconds: int | None = None,
                       payment_processor: str = "mercadopago") -> Reservation:
    """Check availability and hold inventory for every line, all or nothing."""
    now = now or utcnow()
    ttl = settings.RESERVATION_TTL_SECONDS if ttl_seconds is None else int(ttl_seconds)

    with atomic(db):
        event = db.get(Event, event_id)
        if not event or event.lifecycle_status != EVENT_ACTIVE:
            raise EventUnavailable(event_id)
        if not items:
            raise EmptyCart()

        # Same ticket type twice in one cart is one line; first position wins.
        lines: dict[str, list] = {}
        for item in items:
            lines.setdefault(item.ticket_type_id, []).append(item.quantity)

        locked = {
            tt.id: tt
            for tt in db.execute(
                select(TicketType)
                .where(TicketType.id.in_(sorted(lines)))
                .order_by(TicketType.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        }

        for tt_id in lines:
            tt = locked.get(tt_id)
            if not tt or tt.event_id != event_id:
                raise TicketTypeUnavailable(tt_id)
            if not tt.active:
                raise TicketTypeUnavailable(tt_id, tt.name, reason="inactive")
            if not sale_window_open(tt, now):
                raise TicketTypeUnavailable(tt_id, tt.name, reason="sale_window_closed")

        quantities: dict[str, int] = {}
        for tt_id, raw in lines.items():
            tt = locked[tt_id]
            lo, hi = order_limits(tt)
            bad = next((q for q in raw if not _is_positive_int(q)), None)
            if bad is not None:
                raise InvalidQuantity(tt_id, tt.name, bad, lo, hi)
            qty = sum(raw)
            if qty < lo or qty > hi:
                raise InvalidQuantity(tt_id, tt.name, qty, lo, hi)
            quantities[tt_id] = qty

        for tt_id, qty in quantities.items():
            tt = locked[tt_id]
            if available_units(tt) < qty:
                raise InsufficientInventory(tt_id, tt.name, qty, available_units(tt))

        for tt_id in sorted(quantities):
            qty = quantities[tt_id]
            res = db.execute(
                update(TicketType)
                .where(
                    TicketType.id == tt_id,
                    TicketType.capacity - TicketType.sold_count - TicketType.reserved_count >= qty,
                )
                .values(reserved_count=TicketType.reserved_count + qty)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                tt = locked[tt_id]
                db.refresh(tt)
                raise InsufficientInventory(tt_id, tt.name, qty, available_units(tt))

        reservation = Reservation(
            id=str(uuid.uuid4()),
            user_id=user_id,
            event_id=event_id,
            status=ACTIVE,
            total_amount=sum(int(locked[t].price) * q for t, q in quantities.items()),
            payment_processor=payment_processor,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        reservation.items = [
            ReservationItem(
                id=str(uuid.uuid4()),
                ticket_type_id=tt_id,
                position=pos,
                quantity=quantities[tt_id],
                unit_price=int(locked[tt_id].price),
            )
            for pos, tt_id in enumerate(lines)
        ]
        db.add(reservation)

    logger.info("reservation {} created: user={} event={} units={} total={}",
                reservation.id, user_id, event_id, sum(quantities.values()), reservation.total_amount)
    return reservation


def release_held(db: Session, reservation_id: str, to_status: str, now: datetime,
                 expired_by: datetime | None = None) -> int | None:
    """Move an active reservation to ``to_status`` and give its held units back.

    Must run inside ``atomic()``. The status update is a compare-and-swap on
    ``status = 'active'``; returns None without touching inventory if another
    transition got there first, otherwise the number of units released.
    """
    cond = [Reservation.id == reservation_id, Reservation.status == ACTIVE]
    if expired_by is not None:
        cond.append(Reservation.expires_at <= expired_by)
    res = db.execute(
        update(Reservation)
        .where(*cond)
        .values(status=to_status, closed_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return None

    rows = db.execute(
        select(ReservationItem.ticket_type_id, ReservationItem.quantity)
        .where(ReservationItem.reservation_id == reservation_id)
        .order_by(ReservationItem.ticket_type_id)
    ).all()
    released = 0
    for tt_id, qty in rows:
        r = db.execute(
            update(TicketType)
            .where(TicketType.id == tt_id, TicketType.reserved_count >= qty)
            .values(reserved_count=TicketType.reserved_count - qty)
            .execution_options(synchronize_session=False)
        )
        if r.rowcount != 1:
            raise RuntimeError(f"held count of ticket type {tt_id} is below {qty} for reservation {reservation_id}")
        released += qty
    return released


def cancel_reservation(db: Session, reservation_id: str, user_id: str | None = None,
                       actor: str | None = None, now: datetime | None = None) -> Reservation:
    """Release an active reservation early. With ``user_id`` only its owner may cancel."""
    now = now or utcnow()
    with atomic(db):
        r = db.get(Reservation, reservation_id, populate_existing=True)
        if not r or (user_id is not None and r.user_id != user_id):
            raise ReservationNotFound(reservation_id)
        if r.status != ACTIVE:
            raise ReservationNotActive(reservation_id, r.status)
        released = release_held(db, reservation_id, CANCELLED, now)
        if released is None:
            db.refresh(r)
            raise ReservationNotActive(reservation_id, r.status)
        log_audit(db, actor_user_id=actor or user_id or "system", action="reservation.cancelled",
                  entity_type="reservation", entity_id=reservation_id, details={"released": released})

    logger.info("reservation {} cancelled by {} ({} units released)", reservation_id, actor or user_id or "system", released)
    return r


def get_reservation(db: Session, reservation_id: str, user_id: str | None = None) -> Reservation:
    r = db.get(Reservation, reservation_id, populate_existing=True)
    if not r or (user_id is not None and r.user_id != user_id):
        raise ReservationNotFound(reservation_id)
    return r


def list_user_reservations(db: Session, user_id: str, status: str | None = ACTIVE) -> list[Reservation]:
    q = select(Reservation).where(Reservation.user_id == user_id)
    if status:
        q = q.where(Reservation.status == status)
    return list(db.execute(q.order_by(Reservation.created_at.desc())).scalars().all())


def attach_payment_session(db: Session, reservation_id: str, payment_session_id: str) -> bool:
    """Record the provider preference id; only an active reservation accepts it."""
    with atomic(db):
        res = db.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status == ACTIVE)
            .values(payment_session_id=payment_session_id)
            .execution_options(synchronize_session=False)
        )
    return res.rowcount == 1
