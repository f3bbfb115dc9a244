# Import all models so mappers resolve relationships and Alembic sees them in metadata
from taquilla.db.session import Base  # noqa: F401
from taquilla.models.audit_log import AuditLog  # noqa: F401
from taquilla.models.event import Event  # noqa: F401
from taquilla.models.order import Order  # noqa: F401
from taquilla.models.reservation import Reservation, ReservationItem  # noqa: F401
from taquilla.models.ticket import Ticket  # noqa: F401
from taquilla.models.ticket_type import TicketType  # noqa: F401
