import os
import tempfile
import uuid

_tmp = tempfile.mkdtemp(prefix="taquilla-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp}/taquilla.db"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["MP_SANDBOX"] = "false"
os.environ["MP_WEBHOOK_VERIFY"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["CONTENTION_BACKOFF_MS"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
import redis  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import taquilla.db.base  # noqa: E402,F401
from taquilla.api.deps import get_payment_gateway, get_redis  # noqa: E402
from taquilla.core.security import create_access_token  # noqa: E402
from taquilla.db.session import Base, SessionLocal, engine  # noqa: E402
from taquilla.main import app  # noqa: E402
from taquilla.models.event import EVENT_ACTIVE, Event  # noqa: E402
from taquilla.models.ticket_type import TicketType  # noqa: E402
from taquilla.services.inventory_service import get_availability  # noqa: E402
from taquilla.services.mercadopago_client import MercadoPagoError  # noqa: E402


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db(schema):
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


# Factories commit through their own short-lived session and hand back ids, so
# the test never holds an open SQLite transaction while the API or a thread writes.

@pytest.fixture
def make_event(schema):
    def _make(lifecycle_status: str = EVENT_ACTIVE, name: str = "Concierto", currency: str = "COP") -> str:
        with SessionLocal() as s:
            ev = Event(id=str(uuid.uuid4()), organization_id=str(uuid.uuid4()), name=name,
                       lifecycle_status=lifecycle_status, currency=currency)
            s.add(ev)
            s.commit()
            return ev.id
    return _make


@pytest.fixture
def make_ticket_type(schema):
    def _make(event_id: str, name: str = "General", price: int = 50000, capacity: int = 100,
              min_per_order=None, max_per_order=None, sale_start=None, sale_end=None,
              active: bool = True, tt_id: str | None = None) -> str:
        with SessionLocal() as s:
            tt = TicketType(
                id=tt_id or str(uuid.uuid4()),
                event_id=event_id,
                name=name,
                price=price,
                capacity=capacity,
                sold_count=0,
                reserved_count=0,
                min_per_order=min_per_order,
                max_per_order=max_per_order,
                sale_start=sale_start,
                sale_end=sale_end,
                active=active,
            )
            s.add(tt)
            s.commit()
            return tt.id
    return _make


@pytest.fixture
def availability(schema):
    def _read(ticket_type_id: str):
        with SessionLocal() as s:
            return get_availability(s, ticket_type_id)
    return _read


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = "user-1", role: str = "customer") -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}
    return _headers


class FakePipeline:
    def __init__(self, r: "FakeRedis"):
        self.r = r
        self.ops = []

    def __getattr__(self, name):
        def _queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self
        return _queue

    def execute(self):
        if self.r.down:
            raise redis.ConnectionError("redis is down")
        return [getattr(self.r, name)(*args, **kwargs) for name, args, kwargs in self.ops]


class FakeRedis:
    """Sorted-set subset of redis.Redis used by the rate limiter."""

    def __init__(self, down: bool = False):
        self.down = down
        self.zsets: dict[str, dict[str, float]] = {}
        self.ttls: dict[str, int] = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def zremrangebyscore(self, key, lo, hi):
        z = self.zsets.get(key, {})
        gone = [m for m, s in z.items() if lo <= s <= hi]
        for m in gone:
            del z[m]
        return len(gone)

    def zadd(self, key, mapping):
        z = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in z)
        z.update(mapping)
        return added

    def zcard(self, key):
        return len(self.zsets.get(key, {}))

    def zrange(self, key, start, end, withscores=False):
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        end = len(items) - 1 if end == -1 else end
        picked = items[start:end + 1]
        return picked if withscores else [m for m, _ in picked]

    def zrem(self, key, *members):
        if self.down:
            raise redis.ConnectionError("redis is down")
        z = self.zsets.get(key, {})
        return sum(1 for m in members if z.pop(m, None) is not None)

    def pexpire(self, key, ms):
        self.ttls[key] = ms
        return True


class FakeGateway:
    def __init__(self):
        self.fail = False
        self.preferences: list[dict] = []
        self.payments: dict[str, dict] = {}

    def create_preference(self, body: dict) -> dict:
        if self.fail:
            raise MercadoPagoError("Mercado Pago 500: {'message': 'internal_error'}")
        self.preferences.append(body)
        pref_id = f"pref-{len(self.preferences)}"
        return {"id": pref_id, "init_point": f"https://mp.test/checkout/{pref_id}"}

    def get_payment(self, payment_id: str) -> dict:
        if payment_id not in self.payments:
            raise MercadoPagoError(f"Mercado Pago 404: payment {payment_id}")
        return self.payments[payment_id]

    def approve(self, payment_id: str, reservation_id: str, status: str = "approved", platform: str = "web"):
        self.payments[payment_id] = {
            "id": payment_id,
            "status": status,
            "metadata": {"reservation_id": reservation_id, "platform": platform},
        }


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(schema, fake_redis, gateway):
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
