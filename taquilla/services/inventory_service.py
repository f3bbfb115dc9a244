"""Inventory ledger reads.

Availability is always computed from the same ``sold_count`` / ``reserved_count``
columns the reservation engine updates; there is no cached counter.
"""
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from taquilla.core.clock import as_utc, utcnow
from taquilla.core.config import settings
from taquilla.core.errors import TicketTypeUnavailable
from taquilla.models.ticket_type import TicketType


@dataclass(frozen=True)
class Availability:
    capacity: int
    sold: int
    held: int
    available: int


@dataclass(frozen=True)
class TicketTypeAvailability:
    ticket_type_id: str
    name: str
    description: str | None
    price: int
    capacity: int
    sold: int
    held: int
    available: int
    min_per_order: int
    max_per_order: int
    sale_start: datetime | None
    sale_end: datetime | None
    is_available: bool
    is_sold_out: bool


def order_limits(tt: TicketType) -> tuple[int, int]:
    """Effective (min, max) units per order; unset columns fall back to configuration."""
    lo = tt.min_per_order if tt.min_per_order is not None else settings.DEFAULT_MIN_PER_ORDER
    hi = tt.max_per_order if tt.max_per_order is not None else settings.DEFAULT_MAX_PER_ORDER
    return max(1, int(lo)), int(hi)


def sale_window_open(tt: TicketType, now: datetime) -> bool:
    start, end = as_utc(tt.sale_start), as_utc(tt.sale_end)
    if start and now < start:
        return False
    if end and now > end:
        return False
    return True


def available_units(tt: TicketType) -> int:
    return max(0, int(tt.capacity) - int(tt.sold_count or 0) - int(tt.reserved_count or 0))


def get_availability(db: Session, ticket_type_id: str) -> Availability:
    tt = db.get(TicketType, ticket_type_id, populate_existing=True)
    if not tt:
        raise TicketTypeUnavailable(ticket_type_id)
    return Availability(
        capacity=int(tt.capacity),
        sold=int(tt.sold_count or 0),
        held=int(tt.reserved_count or 0),
        available=available_units(tt),
    )


def list_event_availability(db: Session, event_id: str, now: datetime | None = None) -> list[TicketTypeAvailability]:
    now = now or utcnow()
    rows = db.execute(
        select(TicketType)
        .where(TicketType.event_id == event_id)
        .order_by(TicketType.price.asc(), TicketType.name.asc())
        .execution_options(populate_existing=True)
    ).scalars().all()

    out = []
    for tt in rows:
        lo, hi = order_limits(tt)
        available = available_units(tt)
        out.append(TicketTypeAvailability(
            ticket_type_id=tt.id,
            name=tt.name,
            description=tt.description,
            price=int(tt.price),
            capacity=int(tt.capacity),
            sold=int(tt.sold_count or 0),
            held=int(tt.reserved_count or 0),
            available=available,
            min_per_order=lo,
            max_per_order=hi,
            sale_start=as_utc(tt.sale_start),
            sale_end=as_utc(tt.sale_end),
            is_available=bool(tt.active) and sale_window_open(tt, now) and available > 0,
            is_sold_out=available <= 0,
        ))
    return out
