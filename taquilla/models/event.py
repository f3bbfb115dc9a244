from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from taquilla.db.session import Base

EVENT_ACTIVE = "active"


class Event(Base):
    """Read-only here: events are managed by the organizer admin."""
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(200))
    lifecycle_status: Mapped[str] = mapped_column(String(20), default="draft", index=True)  # draft, active, finished, cancelled
    currency: Mapped[str] = mapped_column(String(3), default="COP")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
