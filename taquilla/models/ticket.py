from sqlalchemy import Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, timezone
from taquilla.db.session import Base

VALID = "valid"
USED = "used"
CANCELLED = "cancelled"


class Ticket(Base):
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    ticket_type_id: Mapped[str] = mapped_column(String(36), ForeignKey("ticket_types.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    qr_code: Mapped[str] = mapped_column(String(64), unique=True, index=True)  # redemption code
    status: Mapped[str] = mapped_column(String(16), default=VALID)  # valid, used, cancelled

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="tickets")
