"""Maps core errors to the HTTP error payload, with messages in Spanish."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from taquilla.core.errors import TaquillaError


def _invalid_quantity(d: dict) -> str:
    req, lo, hi = d.get("requested"), d.get("min"), d.get("max")
    name = d.get("name") or ""
    if isinstance(req, int) and isinstance(hi, int) and req > hi:
        return f'La cantidad máxima para "{name}" es {hi}'
    if isinstance(req, int) and req >= 1:
        return f'La cantidad mínima para "{name}" es {lo}'
    return "Cantidad inválida para el tipo de ticket"


def _ticket_type_unavailable(d: dict) -> str:
    if d.get("name"):
        return f'El ticket "{d["name"]}" no está disponible para venta en este momento'
    return "Tipo de ticket no encontrado"


MESSAGES = {
    "EventUnavailable": lambda d: "Evento no encontrado o no está activo",
    "EmptyCart": lambda d: "No se seleccionaron tickets",
    "TicketTypeUnavailable": _ticket_type_unavailable,
    "InvalidQuantity": _invalid_quantity,
    "InsufficientInventory": lambda d: (
        f'No hay suficientes tickets para "{d.get("name")}". '
        f'Solicitaste {d.get("requested")}, pero solo hay {d.get("available")} disponibles'
    ),
    "ReservationNotFound": lambda d: "Reservación no encontrada",
    "ReservationNotActive": lambda d: f'La reservación no está activa. Estado: {d.get("status")}',
    "ReservationExpired": lambda d: "La reservación ha expirado. Por favor, intenta de nuevo.",
    "Contention": lambda d: "Hay mucha demanda en este momento. Por favor, intenta de nuevo.",
    "TicketNotFound": lambda d: "Ticket no encontrado",
    "TicketNotValid": lambda d: f'El ticket no es válido. Estado: {d.get("status")}',
    "RateLimited": lambda d: "Demasiados intentos. Por favor, espera unos minutos e intenta de nuevo.",
    "PaymentProviderUnavailable": lambda d: "No pudimos iniciar el pago. Tu reserva fue liberada, intenta de nuevo.",
}


def translate(exc: TaquillaError) -> str:
    fn = MESSAGES.get(exc.kind)
    return fn(exc.details) if fn else "Ocurrió un error inesperado. Por favor, intenta de nuevo."


def error_payload(exc: TaquillaError) -> dict:
    return {"error": {"kind": exc.kind, "message": translate(exc), "details": exc.details}}


async def taquilla_error_handler(request: Request, exc: TaquillaError) -> JSONResponse:
    headers = {}
    if exc.retryable:
        headers["Retry-After"] = "1"
    if exc.kind == "RateLimited":
        headers["X-RateLimit-Remaining"] = str(exc.details.get("remaining", 0))
        headers["X-RateLimit-Reset"] = str(exc.details.get("reset_at", 0))
    if exc.status_code >= 500:
        logger.warning("{} {} -> {} {}", request.method, request.url.path, exc.kind, exc.details)
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc), headers=headers)


EXCEPTION_HANDLERS = {
    TaquillaError: taquilla_error_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
