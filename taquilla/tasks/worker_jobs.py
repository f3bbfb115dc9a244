from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from taquilla.db.session import SessionLocal
from taquilla.services.expiry_service import reclaim_expired
import taquilla.db.base  # noqa: F401

def expire_reservations(batch_size: int | None = None) -> dict:
    db: Session = SessionLocal()
    try:
        try:
            n = reclaim_expired(db, batch_size=batch_size)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        return {"expired": n}
    finally:
        db.close()
