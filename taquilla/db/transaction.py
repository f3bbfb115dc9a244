import random
import time
from contextlib import contextmanager
from typing import Callable, TypeVar

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from taquilla.core.config import settings
from taquilla.core.errors import Contention

T = TypeVar("T")

# lock_not_available, deadlock_detected, serialization_failure
_LOCK_FAILURE_PGCODES = {"55P03", "40P01", "40001"}


def lock_failure_reason(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None)
    if code in _LOCK_FAILURE_PGCODES:
        return {"55P03": "lock_timeout", "40P01": "deadlock", "40001": "serialization"}[code]
    if "database is locked" in str(orig or exc).lower():
        return "lock_timeout"
    return None


@contextmanager
def atomic(db: Session):
    """Run the block as one transaction: commit on success, roll back on any error.

    On PostgreSQL row-lock waits are bounded by LOCK_TIMEOUT_MS; lock timeouts,
    deadlocks and serialization failures are re-raised as ``Contention``.
    """
    try:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(
                text("SELECT set_config('lock_timeout', :v, true)"),
                {"v": f"{int(settings.LOCK_TIMEOUT_MS)}ms"},
            )
        yield db
        db.commit()
    except DBAPIError as e:
        db.rollback()
        reason = lock_failure_reason(e)
        if reason:
            raise Contention(reason=reason) from e
        raise
    except BaseException:
        db.rollback()
        raise


def retry_on_contention(fn: Callable[[], T], attempts: int | None = None, backoff_ms: int | None = None) -> T:
    """Call ``fn`` until it stops raising Contention, with bounded exponential backoff."""
    if attempts is None:
        attempts = settings.CONTENTION_MAX_ATTEMPTS
    base = (settings.CONTENTION_BACKOFF_MS if backoff_ms is None else backoff_ms) / 1000.0
    attempt = 1
    while True:
        try:
            return fn()
        except Contention as e:
            if attempt >= max(1, attempts):
                logger.warning("contention: giving up after {} attempt(s) ({})", attempt, e.details.get("reason"))
                raise
            delay = base * (2 ** (attempt - 1)) * random.uniform(0.5, 1.5)
            logger.info("contention: retry {}/{} in {:.3f}s", attempt, attempts, delay)
            time.sleep(delay)
            attempt += 1
