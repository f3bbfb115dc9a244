from __future__ import annotations

import io
import secrets
from datetime import datetime, timezone

from loguru import logger
from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from taquilla.core.clock import utcnow
from taquilla.core.errors import TicketNotFound, TicketNotValid
from taquilla.db.transaction import atomic
from taquilla.models.ticket import USED, VALID, Ticket
from taquilla.services.audit_service import log_audit


def new_redemption_code() -> str:
    """Unguessable QR payload; uniqueness is also enforced by the tickets.qr_code index."""
    return secrets.token_urlsafe(18)


def render_ticket_pdf_bytes(*, event_name: str, ticket_type_name: str, redemption_code: str,
                            order_id: str, ticket_number: int, ticket_count: int,
                            status: str, paid_at: str = "") -> bytes:
    """Return an A4 PDF bytes. Pure function."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    w, h = A4

    # Header
    c.setFont("Helvetica-Bold", 18)
    c.drawString(40, h - 60, event_name or "Evento")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 80, f"Orden: {order_id}")
    c.drawString(40, h - 96, f"Entrada {ticket_number} de {ticket_count}")

    # Ticket block
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 130, "Tipo de entrada")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 148, ticket_type_name)
    c.drawString(40, h - 164, f"Estado: {status}")
    if paid_at:
        c.drawString(40, h - 180, f"Pagada: {paid_at}")

    # QR with the redemption code
    size = 200
    qr = QrCodeWidget(redemption_code)
    x1, y1, x2, y2 = qr.getBounds()
    d = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
    d.add(qr)
    renderPDF.draw(d, c, (w - size) / 2, h - 460)
    c.setFont("Courier", 10)
    c.drawCentredString(w / 2, h - 475, redemption_code)

    # Footer
    c.setFont("Helvetica", 9)
    c.drawString(40, 40, "Presenta este código QR en el acceso. Cada código es válido una sola vez.")
    c.drawString(40, 26, f"Generado: {datetime.now(timezone.utc).isoformat()}")

    c.showPage()
    c.save()
    return buf.getvalue()


def redeem_ticket(db: Session, code: str, actor: str = "system", now: datetime | None = None) -> Ticket:
    """Mark a ticket as used at the door. A code can be redeemed once."""
    now = now or utcnow()
    with atomic(db):
        res = db.execute(
            update(Ticket)
            .where(Ticket.qr_code == code, Ticket.status == VALID)
            .values(status=USED, used_at=now)
            .execution_options(synchronize_session=False)
        )
        ticket = db.execute(
            select(Ticket).where(Ticket.qr_code == code).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if ticket is None:
            raise TicketNotFound(code)
        if res.rowcount != 1:
            raise TicketNotValid(code, ticket.status)
        log_audit(db, actor_user_id=actor, action="ticket.redeemed", entity_type="ticket", entity_id=ticket.id)

    logger.info("ticket {} redeemed by {}", ticket.id, actor)
    return ticket
