from fastapi import APIRouter, Body, Depends, HTTPException, Request
from loguru import logger
from sqlalchemy.orm import Session

from taquilla.api.deps import get_payment_gateway
from taquilla.core.config import settings
from taquilla.core.errors import ReservationExpired, ReservationNotActive, ReservationNotFound
from taquilla.db.session import get_db
from taquilla.db.transaction import retry_on_contention
from taquilla.services.audit_service import log_audit
from taquilla.services.checkout_service import finalize
from taquilla.services.mercadopago_client import MercadoPagoError, verify_mp_signature

router = APIRouter(tags=["webhooks"])


@router.post("/webhooks/mercadopago")
def mercadopago_webhook(req: Request, payload: dict | None = Body(default=None), db: Session = Depends(get_db),
                        gateway=Depends(get_payment_gateway)):
    payload = payload or {}
    kind = payload.get("type") or req.query_params.get("type") or req.query_params.get("topic") or ""
    data_id = req.query_params.get("data.id") or str((payload.get("data") or {}).get("id") or "")

    if settings.MP_WEBHOOK_VERIFY:
        ok = verify_mp_signature(
            req.headers.get("x-signature"),
            req.headers.get("x-request-id"),
            data_id,
            settings.MP_WEBHOOK_SECRET,
            tolerance_seconds=settings.MP_WEBHOOK_TOLERANCE_SECONDS,
        )
        if not ok:
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

    if kind != "payment" or not data_id:
        logger.info("mercadopago webhook: ignoring notification type={!r}", kind)
        return {"ok": True, "ignored": "type"}

    try:
        payment = gateway.get_payment(data_id)
    except MercadoPagoError as e:
        # non-2xx makes Mercado Pago redeliver
        logger.error("mercadopago webhook: payment {} lookup failed: {}", data_id, e)
        raise HTTPException(status_code=502, detail="Payment lookup failed")

    status = str(payment.get("status") or "")
    if status != "approved":
        logger.info("mercadopago webhook: payment {} is {}, skipping", data_id, status or "unknown")
        return {"ok": True, "ignored": "status"}

    metadata = payment.get("metadata") or {}
    reservation_id = metadata.get("reservation_id") or payment.get("external_reference")
    platform = metadata.get("platform") or "web"
    if platform not in ("web", "app", "cash"):
        platform = "web"
    if not reservation_id:
        logger.error("mercadopago webhook: payment {} has no reservation_id", data_id)
        raise HTTPException(status_code=400, detail="Missing reservation_id in metadata")

    payment_ref = str(payment.get("id") or data_id)
    try:
        order = retry_on_contention(lambda: finalize(db, reservation_id, payment_ref, platform=platform))
    except (ReservationNotActive, ReservationExpired, ReservationNotFound) as e:
        # paid too late: the hold is gone, the payment needs a manual refund
        logger.warning("mercadopago webhook: payment {} for reservation {} not applied: {}",
                       payment_ref, reservation_id, e.kind)
        log_audit(db, actor_user_id="mercadopago", action="payment.late", entity_type="reservation",
                  entity_id=reservation_id, details={"payment_id": payment_ref, "reason": e.kind, **e.details})
        db.commit()
        return {"ok": False, "reason": e.kind, "reservationId": reservation_id}

    if order.payment_provider_ref != payment_ref:
        # reservation already settled by another payment, the buyer was charged twice
        log_audit(db, actor_user_id="mercadopago", action="payment.duplicate", entity_type="reservation",
                  entity_id=reservation_id, details={"payment_id": payment_ref, "order_id": order.id,
                                                     "settled_by": order.payment_provider_ref})
        db.commit()
        return {"ok": True, "orderId": order.id, "ticketsCount": len(order.tickets), "duplicate": True}

    return {"ok": True, "orderId": order.id, "ticketsCount": len(order.tickets)}
