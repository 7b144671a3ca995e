import pytest
from typing import Any, Dict, Generator, Optional
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from services.checkout.models.checkout import Order, TicketType


# Marcado automático según la carpeta
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


class FakeRedis:
    """Doble en memoria con el subconjunto de comandos que usa la app (sin TTL real)"""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.expirations: Dict[str, Optional[int]] = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.expirations[key] = ex
        return True

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.expirations[key] = ttl
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def eval(self, script, numkeys, key, identifier):
        # Único script usado: release del lock si el owner coincide
        if self.store.get(key) == identifier:
            del self.store[key]
            return 1
        return 0

    async def close(self):
        pass


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    import shared.cache.redis_client as redis_client

    fake = FakeRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr(redis_client, "get_redis", _get_redis)
    return fake


@pytest.fixture
def client(fake_redis, monkeypatch) -> Generator[TestClient, None, None]:
    import main
    from shared.utils.rate_limiter import limiter

    async def _noop():
        return None

    async def _get_redis():
        return fake_redis

    monkeypatch.setattr(main, "init_redis", _noop)
    monkeypatch.setattr(main, "close_redis", _noop)
    monkeypatch.setattr(main, "get_redis", _get_redis)
    monkeypatch.setattr(limiter, "enabled", False)

    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def catalog():
    return [
        TicketType(id="GA", name="General", price_cents=5000, fee_cents=200, quantity_available=100),
        TicketType(id="VIP", name="VIP", price_cents=15000, fee_cents=500, quantity_available=20),
        TicketType(id="OLD", name="Preventa", price_cents=3000, fee_cents=100, status="inactive"),
    ]


@pytest.fixture
def api():
    """OrderApiClient falso: todos sus métodos son AsyncMock"""
    return AsyncMock()


def make_order(order_id: str = "ord-1", total_cents: int = 10400, status: str = "pending") -> Order:
    return Order(
        id=order_id,
        event_id="evt-1",
        subtotal_cents=total_cents,
        total_cents=total_cents,
        status=status,
    )


@pytest.fixture
def order_factory():
    return make_order
