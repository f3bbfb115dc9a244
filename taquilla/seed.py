import uuid
from datetime import datetime, timedelta, timezone

from loguru import logger
from sqlalchemy.orm import Session
from sqlalchemy import select, text
from sqlalchemy.exc import ProgrammingError

from taquilla.db.session import SessionLocal
from taquilla.core.config import settings
from taquilla.models.event import EVENT_ACTIVE, Event
from taquilla.models.ticket_type import TicketType

DEMO_ORG_ID = "00000000-0000-0000-0000-000000000001"
DEMO_EVENT_NAME = "Festival Demo"

# name, price (COP), capacity, max per order
DEMO_TICKET_TYPES = [
    ("General", 80000, 500, None),
    ("VIP", 250000, 100, 4),
    ("Palco", 900000, 10, 2),
]


def ensure_event(db: Session, name: str) -> Event:
    ev = db.execute(select(Event).where(Event.name == name)).scalar_one_or_none()
    if ev:
        return ev
    ev = Event(
        id=str(uuid.uuid4()),
        organization_id=DEMO_ORG_ID,
        name=name,
        lifecycle_status=EVENT_ACTIVE,
        currency=settings.DEFAULT_CURRENCY,
    )
    db.add(ev)
    db.commit()
    return ev


def ensure_ticket_type(db: Session, event: Event, name: str, price: int, capacity: int, max_per_order: int | None):
    exists = db.execute(
        select(TicketType).where(TicketType.event_id == event.id, TicketType.name == name)
    ).scalar_one_or_none()
    if exists:
        return
    now = datetime.now(timezone.utc)
    db.add(TicketType(
        id=str(uuid.uuid4()),
        event_id=event.id,
        name=name,
        price=price,
        capacity=capacity,
        sold_count=0,
        reserved_count=0,
        max_per_order=max_per_order,
        sale_start=now - timedelta(days=1),
        sale_end=now + timedelta(days=90),
        active=True,
    ))
    db.commit()


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM events LIMIT 1"))
        except ProgrammingError:
            db.rollback()
            logger.warning("[seed] events table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ev = ensure_event(db, DEMO_EVENT_NAME)
        for name, price, capacity, max_per_order in DEMO_TICKET_TYPES:
            ensure_ticket_type(db, ev, name, price, capacity, max_per_order)
        logger.info("[seed] demo event {} ready", ev.id)
    finally:
        db.close()


if __name__ == "__main__":
    run()
