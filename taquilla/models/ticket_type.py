from sqlalchemy import String, Integer, DateTime, Boolean, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from taquilla.db.session import Base

class TicketType(Base):
    """Inventory ledger row. sold_count + reserved_count never exceeds capacity."""
    __tablename__ = "ticket_types"
    __table_args__ = (
        CheckConstraint("sold_count >= 0 AND reserved_count >= 0", name="ck_ticket_types_counts_nonneg"),
        CheckConstraint("sold_count + reserved_count <= capacity", name="ck_ticket_types_no_oversell"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    event_id: Mapped[str] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(120))
    description: Mapped[str] = mapped_column(Text, nullable=True)

    price: Mapped[int] = mapped_column(Integer, default=0)  # whole pesos
    capacity: Mapped[int] = mapped_column(Integer)
    sold_count: Mapped[int] = mapped_column(Integer, default=0)
    reserved_count: Mapped[int] = mapped_column(Integer, default=0)  # held by active reservations

    # NULL = use settings.DEFAULT_MIN_PER_ORDER / DEFAULT_MAX_PER_ORDER
    min_per_order: Mapped[int] = mapped_column(Integer, nullable=True)
    max_per_order: Mapped[int] = mapped_column(Integer, nullable=True)

    sale_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    sale_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
