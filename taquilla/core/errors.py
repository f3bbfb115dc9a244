class TaquillaError(Exception):
    """Base class for expected business failures of the reservation core.

    ``kind`` is the machine-readable name returned to clients, ``details`` the
    structured values needed to build a user-facing message.
    """

    kind = "TaquillaError"
    status_code = 400
    retryable = False

    def __init__(self, message: str, **details) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class EventUnavailable(TaquillaError):
    kind = "EventUnavailable"
    status_code = 404

    def __init__(self, event_id: str) -> None:
        super().__init__("Event not found or inactive", event_id=event_id)


class EmptyCart(TaquillaError):
    kind = "EmptyCart"
    status_code = 400

    def __init__(self) -> None:
        super().__init__("No items provided for reservation")


class TicketTypeUnavailable(TaquillaError):
    kind = "TicketTypeUnavailable"
    status_code = 409

    def __init__(self, ticket_type_id: str, name: str | None = None, reason: str = "not_found") -> None:
        if name:
            msg = f'Ticket type "{name}" is not available for sale at this time'
        else:
            msg = "Ticket type not found"
        super().__init__(msg, ticket_type_id=ticket_type_id, name=name, reason=reason)


class InvalidQuantity(TaquillaError):
    kind = "InvalidQuantity"
    status_code = 422

    def __init__(self, ticket_type_id: str, name: str, requested, min_qty: int, max_qty: int) -> None:
        if isinstance(requested, int) and requested > max_qty:
            msg = f'Maximum order quantity for "{name}" is {max_qty}'
        elif isinstance(requested, int) and requested >= 1:
            msg = f'Minimum order quantity for "{name}" is {min_qty}'
        else:
            msg = f"Invalid quantity: {requested} for ticket type {ticket_type_id}"
        super().__init__(
            msg, ticket_type_id=ticket_type_id, name=name,
            requested=requested, min=min_qty, max=max_qty,
        )


class InsufficientInventory(TaquillaError):
    kind = "InsufficientInventory"
    status_code = 409

    def __init__(self, ticket_type_id: str, name: str, requested: int, available: int) -> None:
        super().__init__(
            f'Insufficient tickets available for "{name}". Requested: {requested}, Available: {available}',
            ticket_type_id=ticket_type_id, name=name, requested=requested, available=available,
        )


class ReservationNotFound(TaquillaError):
    kind = "ReservationNotFound"
    status_code = 404

    def __init__(self, reservation_id: str) -> None:
        super().__init__("Reservation not found", reservation_id=reservation_id)


class ReservationNotActive(TaquillaError):
    kind = "ReservationNotActive"
    status_code = 409

    def __init__(self, reservation_id: str, status: str) -> None:
        super().__init__(
            f"Reservation is not active. Status: {status}",
            reservation_id=reservation_id, status=status,
        )


class ReservationExpired(TaquillaError):
    kind = "ReservationExpired"
    status_code = 410

    def __init__(self, reservation_id: str, expires_at: str) -> None:
        super().__init__(
            f"Reservation has expired at {expires_at}",
            reservation_id=reservation_id, expires_at=expires_at,
        )


class Contention(TaquillaError):
    """Lock wait timed out or the store aborted the transaction; safe to retry."""

    kind = "Contention"
    status_code = 503
    retryable = True

    def __init__(self, reason: str = "lock_timeout") -> None:
        super().__init__("Could not acquire inventory locks in time", reason=reason)


class TicketNotFound(TaquillaError):
    kind = "TicketNotFound"
    status_code = 404

    def __init__(self, code: str) -> None:
        super().__init__("Ticket not found", code=code)


class TicketNotValid(TaquillaError):
    kind = "TicketNotValid"
    status_code = 409

    def __init__(self, code: str, status: str) -> None:
        super().__init__(f"Ticket is not valid. Status: {status}", code=code, status=status)


class RateLimited(TaquillaError):
    kind = "RateLimited"
    status_code = 429

    def __init__(self, remaining: int, reset_at: int) -> None:
        super().__init__("Too many checkout attempts", remaining=remaining, reset_at=reset_at)


class PaymentProviderUnavailable(TaquillaError):
    kind = "PaymentProviderUnavailable"
    status_code = 502

    def __init__(self, reservation_id: str) -> None:
        super().__init__("Could not start the payment with the provider", reservation_id=reservation_id)
