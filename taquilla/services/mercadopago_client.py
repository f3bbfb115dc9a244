import hashlib
import hmac
import json
import time
from dataclasses import dataclass

import requests
from loguru import logger

from taquilla.core.clock import to_iso, utcnow
from taquilla.core.config import settings

SANDBOX_PREFIX = "sandbox-"


@dataclass
class MercadoPagoConfig:
    access_token: str
    api_base: str = "https://api.mercadopago.com"
    timeout: int = 25


class MercadoPagoError(RuntimeError):
    pass


class MercadoPagoClient:
    def __init__(self, cfg: MercadoPagoConfig):
        self.cfg = cfg

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.cfg.api_base.rstrip('/')}{path}"
        headers = {
            "Authorization": f"Bearer {self.cfg.access_token}",
            "Accept": "application/json",
        }
        data = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        try:
            r = requests.request(method=method.upper(), url=url, data=data, headers=headers, timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise MercadoPagoError(f"Mercado Pago unreachable: {e}") from e
        try:
            body = r.json() if r.text else {}
        except ValueError:
            body = {"raw": r.text}
        if r.status_code >= 400:
            raise MercadoPagoError(f"Mercado Pago {r.status_code}: {body}")
        return body

    def create_preference(self, body: dict) -> dict:
        return self.request("POST", "/checkout/preferences", body)

    def get_payment(self, payment_id: str) -> dict:
        return self.request("GET", f"/v1/payments/{payment_id}")


class SandboxGateway:
    """Stand-in used with MP_SANDBOX: checkout links straight to the success page
    and a payment id of the form ``sandbox-<reservation id>`` reads as approved."""

    def create_preference(self, body: dict) -> dict:
        rid = (body.get("metadata") or {}).get("reservation_id", "")
        return {
            "id": f"{SANDBOX_PREFIX}pref-{rid}",
            "init_point": f"{settings.APP_URL}/payment/success?payment_id={SANDBOX_PREFIX}{rid}",
        }

    def get_payment(self, payment_id: str) -> dict:
        if not str(payment_id).startswith(SANDBOX_PREFIX):
            return {"id": payment_id, "status": "rejected", "metadata": {}}
        rid = str(payment_id)[len(SANDBOX_PREFIX):]
        return {"id": payment_id, "status": "approved", "metadata": {"reservation_id": rid, "platform": "web"}}


def build_gateway():
    if settings.MP_SANDBOX:
        return SandboxGateway()
    return MercadoPagoClient(MercadoPagoConfig(
        access_token=settings.MP_ACCESS_TOKEN,
        api_base=settings.MP_API_BASE,
    ))


def calculate_marketplace_fee(total_amount: int | float) -> float:
    fee = float(total_amount) * float(settings.MARKETPLACE_FEE_PERCENTAGE) / 100
    return round(fee, 2)


def build_preference_body(reservation, names: dict[str, str], organization_id: str | None,
                          currency: str, platform: str = "web") -> dict:
    """Preference for an active reservation. It expires together with the hold."""
    app_url = settings.APP_URL.rstrip("/")
    return {
        "items": [
            {
                "id": it.ticket_type_id,
                "title": names.get(it.ticket_type_id) or "Entrada",
                "quantity": int(it.quantity),
                "unit_price": int(it.unit_price),
                "currency_id": currency,
            }
            for it in reservation.items
        ],
        "back_urls": {
            "success": f"{app_url}/payment/success",
            "failure": f"{app_url}/payment/failure",
            "pending": f"{app_url}/payment/pending",
        },
        "auto_return": "approved",
        "notification_url": f"{app_url}/api/v1/webhooks/mercadopago",
        "external_reference": reservation.id,
        "metadata": {
            "reservation_id": reservation.id,
            "event_id": reservation.event_id,
            "user_id": reservation.user_id,
            "organization_id": organization_id,
            "platform": platform,
        },
        "expires": True,
        "expiration_date_from": to_iso(utcnow()),
        "expiration_date_to": to_iso(reservation.expires_at),
        "marketplace_fee": calculate_marketplace_fee(reservation.total_amount),
        "statement_descriptor": settings.MP_STATEMENT_DESCRIPTOR[:13],
    }


def parse_signature_header(x_signature: str) -> dict:
    parts = {}
    for chunk in (x_signature or "").split(","):
        if "=" in chunk:
            k, v = chunk.split("=", 1)
            parts[k.strip()] = v.strip()
    return parts


def verify_mp_signature(x_signature: str | None, x_request_id: str | None, data_id: str | None,
                        secret: str, tolerance_seconds: int = 0, now: float | None = None) -> bool:
    """Check a Mercado Pago ``x-signature`` header (``ts=...,v1=...``).

    The signed manifest is ``id:<data.id>;request-id:<x-request-id>;ts:<ts>;``,
    leaving out any part that was not sent. With ``tolerance_seconds`` the
    timestamp must also be recent.
    """
    if not x_signature or not secret:
        return False
    parts = parse_signature_header(x_signature)
    ts, v1 = parts.get("ts"), parts.get("v1")
    if not ts or not v1:
        return False

    manifest = ""
    if data_id:
        manifest += f"id:{str(data_id).lower()};"
    if x_request_id:
        manifest += f"request-id:{x_request_id};"
    manifest += f"ts:{ts};"
    computed = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(computed, v1.lower()):
        return False

    if tolerance_seconds:
        try:
            sent = float(ts)
        except ValueError:
            return False
        if sent > 1e12:  # milliseconds
            sent /= 1000.0
        current = time.time() if now is None else now
        if abs(current - sent) > tolerance_seconds:
            logger.warning("mercadopago webhook: stale signature timestamp {}", ts)
            return False
    return True
