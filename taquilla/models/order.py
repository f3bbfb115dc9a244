from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, timezone
from taquilla.db.session import Base

class Order(Base):
    """Created once, by the checkout finalizer, from a completed reservation. Never updated."""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reservation_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)  # buyer
    event_id: Mapped[str] = mapped_column(String(36), index=True)

    total_amount: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3), default="COP")
    platform: Mapped[str] = mapped_column(String(10), default="web")  # web, app, cash
    payment_provider_ref: Mapped[str] = mapped_column(String(120), index=True, default="")

    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    tickets: Mapped[list["Ticket"]] = relationship(back_populates="order", order_by="Ticket.position", lazy="selectin")
