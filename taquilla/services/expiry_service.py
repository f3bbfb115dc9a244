from datetime import datetime

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from taquilla.core.clock import utcnow
from taquilla.core.config import settings
from taquilla.core.errors import Contention
from taquilla.db.transaction import atomic
from taquilla.models.reservation import ACTIVE, EXPIRED, Reservation
from taquilla.services.audit_service import log_audit
from taquilla.services.reservation_service import release_held


def reclaim_expired(db: Session, now: datetime | None = None, batch_size: int | None = None) -> int:
    """Expire active reservations past their TTL and return their held units.

    Each reservation is its own transaction, guarded by a compare-and-swap on
    status, so a reservation completed (or cancelled) in the meantime is skipped.
    Re-running, or running several sweeps at once, is harmless.
    """
    now = now or utcnow()
    limit = batch_size or settings.EXPIRY_SWEEP_BATCH_SIZE

    due = db.execute(
        select(Reservation.id)
        .where(Reservation.status == ACTIVE, Reservation.expires_at <= now)
        .order_by(Reservation.expires_at.asc())
        .limit(limit)
    ).scalars().all()
    db.rollback()  # end the read before per-reservation units of work

    reclaimed = 0
    units = 0
    for reservation_id in due:
        try:
            with atomic(db):
                released = release_held(db, reservation_id, EXPIRED, now, expired_by=now)
                if released is not None:
                    log_audit(db, actor_user_id="system", action="reservation.expired",
                              entity_type="reservation", entity_id=reservation_id,
                              details={"released": released})
        except Contention:
            # Left active; the next tick picks it up again.
            logger.warning("expiry sweep: reservation {} is locked, skipping", reservation_id)
            continue
        if released is None:
            continue
        reclaimed += 1
        units += released

    if reclaimed:
        logger.info("expiry sweep: {} reservation(s) expired, {} unit(s) released", reclaimed, units)
    return reclaimed
