"""
HTTP surface: reservations, availability, checkout, Mercado Pago webhook, orders, cash sales and door redemption.
"""

import json

import pytest
from sqlalchemy import select

from taquilla.core.config import settings
from taquilla.db.session import SessionLocal
from taquilla.models.audit_log import AuditLog

API = "/api/v1"


@pytest.fixture
def stock(make_event, make_ticket_type):
    ev = make_event()
    general = make_ticket_type(ev, name="General", price=50000, capacity=10)
    palco = make_ticket_type(ev, name="Palco", price=400000, capacity=2, max_per_order=2)
    return {"event": ev, "general": general, "palco": palco}


def _cart(stock, **quantities):
    return {
        "eventId": stock["event"],
        "items": [{"ticketTypeId": stock[name], "quantity": q} for name, q in quantities.items()],
    }


@pytest.mark.integration
class TestReservationsApi:
    def test_requires_auth(self, client, stock):
        assert client.post(f"{API}/reservations", json=_cart(stock, general=1)).status_code == 401

    def test_create_and_read(self, client, stock, auth_headers, availability):
        res = client.post(f"{API}/reservations", json=_cart(stock, general=2, palco=1), headers=auth_headers())
        assert res.status_code == 201
        body = res.json()
        assert body["status"] == "active"
        assert body["totalAmount"] == 2 * 50000 + 400000
        assert [i["ticketTypeId"] for i in body["items"]] == [stock["general"], stock["palco"]]
        assert body["expiresAt"]
        assert availability(stock["general"]).held == 2

        got = client.get(f"{API}/reservations/{body['reservationId']}", headers=auth_headers())
        assert got.status_code == 200
        assert got.json()["reservationId"] == body["reservationId"]

        # someone else's reservation looks like a missing one
        other = client.get(f"{API}/reservations/{body['reservationId']}", headers=auth_headers("user-2"))
        assert other.status_code == 404
        assert other.json()["error"]["kind"] == "ReservationNotFound"

    def test_insufficient_inventory_payload(self, client, stock, auth_headers):
        client.post(f"{API}/reservations", json=_cart(stock, palco=2), headers=auth_headers("user-1"))

        res = client.post(f"{API}/reservations", json=_cart(stock, palco=1), headers=auth_headers("user-2"))

        assert res.status_code == 409
        err = res.json()["error"]
        assert err["kind"] == "InsufficientInventory"
        assert err["details"]["available"] == 0
        assert err["details"]["requested"] == 1
        assert err["message"] == 'No hay suficientes tickets para "Palco". Solicitaste 1, pero solo hay 0 disponibles'

    def test_invalid_quantity_payload(self, client, stock, auth_headers):
        res = client.post(f"{API}/reservations", json=_cart(stock, palco=3), headers=auth_headers())
        assert res.status_code == 422
        err = res.json()["error"]
        assert err["kind"] == "InvalidQuantity"
        assert (err["details"]["min"], err["details"]["max"], err["details"]["requested"]) == (1, 2, 3)
        assert err["message"] == 'La cantidad máxima para "Palco" es 2'

        zero = client.post(f"{API}/reservations", json=_cart(stock, general=0), headers=auth_headers())
        assert zero.status_code == 422
        assert zero.json()["error"]["message"] == "Cantidad inválida para el tipo de ticket"

    def test_empty_cart_and_unknown_event(self, client, stock, auth_headers):
        empty = client.post(f"{API}/reservations", json={"eventId": stock["event"], "items": []}, headers=auth_headers())
        assert empty.status_code == 400
        assert empty.json()["error"]["kind"] == "EmptyCart"

        missing = client.post(f"{API}/reservations", json={"eventId": "nope", "items": []}, headers=auth_headers())
        assert missing.status_code == 404
        assert missing.json()["error"]["kind"] == "EventUnavailable"

    def test_cancel_and_list(self, client, stock, auth_headers, availability):
        rid = client.post(f"{API}/reservations", json=_cart(stock, general=3), headers=auth_headers()).json()["reservationId"]
        mine = client.get(f"{API}/me/reservations", headers=auth_headers()).json()
        assert [r["reservationId"] for r in mine] == [rid]

        res = client.post(f"{API}/reservations/{rid}/cancel", headers=auth_headers())
        assert res.status_code == 200
        assert res.json()["status"] == "cancelled"
        assert availability(stock["general"]).held == 0
        assert client.get(f"{API}/me/reservations", headers=auth_headers()).json() == []
        assert len(client.get(f"{API}/me/reservations?status=all", headers=auth_headers()).json()) == 1

        again = client.post(f"{API}/reservations/{rid}/cancel", headers=auth_headers())
        assert again.status_code == 409
        assert again.json()["error"]["message"] == "La reservación no está activa. Estado: cancelled"

    def test_admin_cancel(self, client, stock, auth_headers):
        rid = client.post(f"{API}/reservations", json=_cart(stock, general=1), headers=auth_headers()).json()["reservationId"]

        forbidden = client.post(f"{API}/admin/reservations/{rid}/cancel", headers=auth_headers("user-2"))
        assert forbidden.status_code == 403

        ok = client.post(f"{API}/admin/reservations/{rid}/cancel", headers=auth_headers("ops-1", role="ops"))
        assert ok.status_code == 200
        assert ok.json()["status"] == "cancelled"


@pytest.mark.integration
class TestAvailabilityApi:
    def test_event_and_ticket_type(self, client, stock, auth_headers):
        client.post(f"{API}/reservations", json=_cart(stock, palco=2), headers=auth_headers())

        ev = client.get(f"{API}/events/{stock['event']}/availability").json()
        palco = next(t for t in ev["ticketTypes"] if t["name"] == "Palco")
        assert (palco["held"], palco["available"], palco["isSoldOut"], palco["isAvailable"]) == (2, 0, True, False)
        assert palco["maxPerOrder"] == 2

        one = client.get(f"{API}/ticket-types/{stock['general']}/availability").json()
        assert one == {"ticketTypeId": stock["general"], "capacity": 10, "sold": 0, "held": 0, "available": 10}

        assert client.get(f"{API}/ticket-types/nope/availability").status_code == 409


@pytest.mark.integration
class TestCheckoutApi:
    def test_creates_preference(self, client, stock, auth_headers, gateway):
        res = client.post(f"{API}/checkout", json=_cart(stock, general=2), headers=auth_headers())

        assert res.status_code == 200
        body = res.json()
        assert body["checkoutUrl"] == "https://mp.test/checkout/pref-1"
        assert body["reservation"]["paymentSessionId"] == "pref-1"
        assert res.headers["X-RateLimit-Remaining"] == "1"

        pref = gateway.preferences[0]
        assert pref["metadata"]["reservation_id"] == body["reservation"]["reservationId"]
        assert pref["marketplace_fee"] == 5000.0
        assert pref["items"][0]["title"] == "General"

    def test_provider_failure_releases_hold(self, client, stock, auth_headers, gateway, availability):
        gateway.fail = True

        res = client.post(f"{API}/checkout", json=_cart(stock, general=2), headers=auth_headers())

        assert res.status_code == 502
        err = res.json()["error"]
        assert err["kind"] == "PaymentProviderUnavailable"
        assert availability(stock["general"]).held == 0
        listed = client.get(f"{API}/me/reservations?status=cancelled", headers=auth_headers()).json()
        assert [r["reservationId"] for r in listed] == [err["details"]["reservation_id"]]

    def test_rate_limited(self, client, stock, auth_headers):
        for _ in range(2):
            assert client.post(f"{API}/checkout", json=_cart(stock, general=1), headers=auth_headers()).status_code == 200

        res = client.post(f"{API}/checkout", json=_cart(stock, general=1), headers=auth_headers())

        assert res.status_code == 429
        assert res.json()["error"]["kind"] == "RateLimited"
        assert res.headers["X-RateLimit-Remaining"] == "0"
        assert int(res.headers["X-RateLimit-Reset"]) > 0
        # another buyer is not affected
        assert client.post(f"{API}/checkout", json=_cart(stock, general=1), headers=auth_headers("user-2")).status_code == 200

    def test_redis_down_fails_open(self, client, stock, auth_headers, fake_redis):
        fake_redis.down = True
        for _ in range(3):
            assert client.post(f"{API}/checkout", json=_cart(stock, general=1), headers=auth_headers()).status_code == 200


@pytest.mark.integration
class TestMercadoPagoWebhook:
    def _checkout(self, client, stock, auth_headers, **quantities):
        res = client.post(f"{API}/checkout", json=_cart(stock, **quantities), headers=auth_headers())
        return res.json()["reservation"]["reservationId"]

    def _notify(self, client, payment_id, **kw):
        return client.post(f"{API}/webhooks/mercadopago", json={"type": "payment", "data": {"id": payment_id}}, **kw)

    def test_approved_payment_issues_tickets(self, client, stock, auth_headers, gateway, availability):
        rid = self._checkout(client, stock, auth_headers, general=2)
        gateway.approve("9001", rid)

        res = self._notify(client, "9001")

        assert res.status_code == 200
        body = res.json()
        assert body["ok"] is True
        assert body["ticketsCount"] == 2
        a = availability(stock["general"])
        assert (a.sold, a.held) == (2, 0)

        # redelivery returns the same order
        again = self._notify(client, "9001").json()
        assert again["orderId"] == body["orderId"]

        order = client.get(f"{API}/me/orders/{body['orderId']}", headers=auth_headers())
        assert order.status_code == 200
        assert order.json()["paymentRef"] == "9001"
        assert len(order.json()["tickets"]) == 2
        assert client.get(f"{API}/me/orders/{body['orderId']}", headers=auth_headers("user-2")).status_code == 404

    def test_ignores_other_notifications(self, client, gateway):
        res = client.post(f"{API}/webhooks/mercadopago", json={"type": "merchant_order", "data": {"id": "1"}})
        assert res.json() == {"ok": True, "ignored": "type"}

    def test_ignores_unapproved(self, client, stock, auth_headers, gateway, availability):
        rid = self._checkout(client, stock, auth_headers, general=1)
        gateway.approve("9002", rid, status="pending")

        assert self._notify(client, "9002").json() == {"ok": True, "ignored": "status"}
        assert availability(stock["general"]).held == 1

    def test_late_payment_is_acknowledged_and_audited(self, client, stock, auth_headers, gateway):
        rid = self._checkout(client, stock, auth_headers, general=1)
        client.post(f"{API}/reservations/{rid}/cancel", headers=auth_headers())
        gateway.approve("9003", rid)

        res = self._notify(client, "9003")

        assert res.status_code == 200
        assert res.json() == {"ok": False, "reason": "ReservationNotActive", "reservationId": rid}
        with SessionLocal() as s:
            actions = s.execute(select(AuditLog.action).where(AuditLog.entity_id == rid)).scalars().all()
        assert "payment.late" in actions

    def test_second_payment_for_settled_reservation_is_audited(self, client, stock, auth_headers, gateway, availability):
        rid = self._checkout(client, stock, auth_headers, general=1)
        gateway.approve("9005", rid)
        first = self._notify(client, "9005").json()
        gateway.approve("9006", rid)

        res = self._notify(client, "9006")

        assert res.status_code == 200
        assert res.json() == {"ok": True, "orderId": first["orderId"], "ticketsCount": 1, "duplicate": True}
        assert availability(stock["general"]).sold == 1
        with SessionLocal() as s:
            dup = s.execute(
                select(AuditLog).where(AuditLog.entity_id == rid, AuditLog.action == "payment.duplicate")
            ).scalar_one()
        assert json.loads(dup.details_json) == {"payment_id": "9006", "order_id": first["orderId"], "settled_by": "9005"}

    def test_unknown_payment_is_redelivered(self, client, gateway):
        assert self._notify(client, "404404").status_code == 502

    def test_signature_required_when_enabled(self, client, stock, auth_headers, gateway, monkeypatch):
        monkeypatch.setattr(settings, "MP_WEBHOOK_VERIFY", True)
        monkeypatch.setattr(settings, "MP_WEBHOOK_SECRET", "whsec")
        rid = self._checkout(client, stock, auth_headers, general=1)
        gateway.approve("9004", rid)

        res = self._notify(client, "9004", headers={"x-signature": "ts=1,v1=bad", "x-request-id": "r-1"})

        assert res.status_code == 401


@pytest.mark.integration
class TestTicketsApi:
    def _paid_order(self, client, stock, auth_headers, gateway):
        rid = client.post(f"{API}/checkout", json=_cart(stock, general=2), headers=auth_headers()).json()["reservation"]["reservationId"]
        gateway.approve("7001", rid)
        oid = client.post(f"{API}/webhooks/mercadopago", json={"type": "payment", "data": {"id": "7001"}}).json()["orderId"]
        return client.get(f"{API}/me/orders/{oid}", headers=auth_headers()).json()

    def test_pdf(self, client, stock, auth_headers, gateway):
        order = self._paid_order(client, stock, auth_headers, gateway)
        ticket = order["tickets"][1]

        res = client.get(f"{API}/me/orders/{order['orderId']}/tickets/{ticket['ticketId']}/pdf", headers=auth_headers())

        assert res.status_code == 200
        assert res.headers["content-type"] == "application/pdf"
        assert res.content.startswith(b"%PDF")
        assert client.get(f"{API}/me/orders/{order['orderId']}/tickets/nope/pdf", headers=auth_headers()).status_code == 404

    def test_redeem_at_the_door(self, client, stock, auth_headers, gateway):
        code = self._paid_order(client, stock, auth_headers, gateway)["tickets"][0]["code"]
        staff = auth_headers("staff-1", role="staff")

        assert client.post(f"{API}/ops/tickets/redeem", json={"code": code}, headers=auth_headers()).status_code == 403

        first = client.post(f"{API}/ops/tickets/redeem", json={"code": code}, headers=staff)
        assert first.status_code == 200
        assert first.json()["status"] == "used"

        second = client.post(f"{API}/ops/tickets/redeem", json={"code": code}, headers=staff)
        assert second.status_code == 409
        assert second.json()["error"]["kind"] == "TicketNotValid"

        unknown = client.post(f"{API}/ops/tickets/redeem", json={"code": "nope"}, headers=staff)
        assert unknown.status_code == 404


@pytest.mark.integration
class TestCashSaleApi:
    def test_box_office_sells_for_cash(self, client, stock, auth_headers, availability):
        body = {"eventId": stock["event"], "buyerId": "buyer-9",
                "items": [{"ticketTypeId": stock["general"], "quantity": 2}]}

        forbidden = client.post(f"{API}/ops/cash-sale", json=body, headers=auth_headers())
        assert forbidden.status_code == 403

        res = client.post(f"{API}/ops/cash-sale", json=body, headers=auth_headers("staff-1", role="staff"))

        assert res.status_code == 201
        order = res.json()
        assert order["platform"] == "cash"
        assert order["paymentRef"] == "cash:staff-1"
        assert order["totalAmount"] == 100000
        assert len(order["tickets"]) == 2
        a = availability(stock["general"])
        assert (a.sold, a.held) == (2, 0)

        # the buyer owns the order
        mine = client.get(f"{API}/me/orders/{order['orderId']}", headers=auth_headers("buyer-9"))
        assert mine.status_code == 200

    def test_sold_out(self, client, stock, auth_headers, availability):
        ops = auth_headers("ops-1", role="ops")
        body = {"eventId": stock["event"], "buyerId": "buyer-9",
                "items": [{"ticketTypeId": stock["palco"], "quantity": 2}]}
        assert client.post(f"{API}/ops/cash-sale", json=body, headers=ops).status_code == 201

        body["items"][0]["quantity"] = 1
        res = client.post(f"{API}/ops/cash-sale", json=body, headers=ops)

        assert res.status_code == 409
        assert res.json()["error"]["kind"] == "InsufficientInventory"
        a = availability(stock["palco"])
        assert (a.sold, a.held) == (2, 0)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
