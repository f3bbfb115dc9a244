from sqlalchemy import String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, timezone
from taquilla.db.session import Base

ACTIVE = "active"
COMPLETED = "completed"
EXPIRED = "expired"
CANCELLED = "cancelled"


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_status_expires_at", "status", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    event_id: Mapped[str] = mapped_column(String(36), index=True)

    status: Mapped[str] = mapped_column(String(20), default=ACTIVE)  # active, completed, expired, cancelled
    total_amount: Mapped[int] = mapped_column(Integer, default=0)

    payment_processor: Mapped[str] = mapped_column(String(40), default="mercadopago")
    payment_session_id: Mapped[str] = mapped_column(String(120), nullable=True)  # MP preference id

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["ReservationItem"]] = relationship(
        back_populates="reservation", order_by="ReservationItem.position", lazy="selectin",
    )


class ReservationItem(Base):
    __tablename__ = "reservation_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reservation_id: Mapped[str] = mapped_column(String(36), ForeignKey("reservations.id", ondelete="CASCADE"), index=True)
    ticket_type_id: Mapped[str] = mapped_column(String(36), ForeignKey("ticket_types.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[int] = mapped_column(Integer)  # price at time of reservation

    reservation: Mapped[Reservation] = relationship(back_populates="items")
