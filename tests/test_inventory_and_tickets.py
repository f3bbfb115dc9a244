from datetime import datetime, timedelta, timezone

import pytest

from taquilla.core.errors import TicketNotFound, TicketNotValid, TicketTypeUnavailable
from taquilla.models.ticket import USED
from taquilla.services.checkout_service import finalize
from taquilla.services.inventory_service import get_availability, list_event_availability
from taquilla.services.reservation_service import CartItem, create_reservation
from taquilla.services.ticket_service import new_redemption_code, redeem_ticket, render_ticket_pdf_bytes

T0 = datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc)


@pytest.mark.integration
class TestInventoryLedger:
    def test_counts_follow_reservations_and_sales(self, db, make_event, make_ticket_type):
        ev = make_event()
        tt = make_ticket_type(ev, capacity=10)
        paid = create_reservation(db, "u1", ev, [CartItem(tt, 3)], now=T0).id
        create_reservation(db, "u2", ev, [CartItem(tt, 2)], now=T0)
        finalize(db, paid, "pay-1", now=T0)

        a = get_availability(db, tt)
        assert (a.capacity, a.sold, a.held, a.available) == (10, 3, 2, 5)

    def test_unknown_ticket_type(self, db):
        with pytest.raises(TicketTypeUnavailable):
            get_availability(db, "missing")

    def test_event_listing(self, db, make_event, make_ticket_type):
        ev = make_event()
        cheap = make_ticket_type(ev, name="General", price=10000, capacity=2)
        make_ticket_type(ev, name="VIP", price=90000, capacity=5, max_per_order=3,
                         sale_start=T0 + timedelta(days=2))
        make_ticket_type(ev, name="Cortesia", price=0, capacity=5, active=False)
        create_reservation(db, "u1", ev, [CartItem(cheap, 2)], now=T0)

        rows = {r.name: r for r in list_event_availability(db, ev, now=T0)}

        assert [r.name for r in list_event_availability(db, ev, now=T0)] == ["Cortesia", "General", "VIP"]
        general = rows["General"]
        assert general.ticket_type_id == cheap
        assert (general.available, general.is_sold_out, general.is_available) == (0, True, False)
        vip = rows["VIP"]
        assert (vip.min_per_order, vip.max_per_order) == (1, 3)
        assert vip.is_available is False  # sale window not open yet
        assert vip.sale_start == T0 + timedelta(days=2)
        assert rows["Cortesia"].is_available is False
        assert rows["Cortesia"].is_sold_out is False


@pytest.mark.integration
class TestRedeemTicket:
    def _issue(self, db, make_event, make_ticket_type):
        ev = make_event()
        tt = make_ticket_type(ev)
        rid = create_reservation(db, "u1", ev, [CartItem(tt, 1)], now=T0).id
        return finalize(db, rid, "pay-1", now=T0).tickets[0].qr_code

    def test_redeem_once(self, db, make_event, make_ticket_type):
        code = self._issue(db, make_event, make_ticket_type)

        t = redeem_ticket(db, code, actor="staff-1", now=T0 + timedelta(days=1))
        assert t.status == USED
        assert t.used_at is not None

        with pytest.raises(TicketNotValid) as e:
            redeem_ticket(db, code)
        assert e.value.details["status"] == USED

    def test_unknown_code(self, db):
        with pytest.raises(TicketNotFound):
            redeem_ticket(db, "nope")


@pytest.mark.unit
class TestTicketDocuments:
    def test_redemption_codes_are_unique(self):
        codes = {new_redemption_code() for _ in range(200)}
        assert len(codes) == 200
        assert all(len(c) <= 64 for c in codes)

    def test_pdf(self):
        pdf = render_ticket_pdf_bytes(
            event_name="Concierto",
            ticket_type_name="VIP",
            redemption_code=new_redemption_code(),
            order_id="order-1",
            ticket_number=1,
            ticket_count=2,
            status="valid",
            paid_at=T0.isoformat(),
        )
        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 1000
