"""Shared fixtures: in-memory database, services and a flaky repository."""

import pytest

from cache import LocalSnapshotStore
from catalog import CatalogService
from clients import ClientLedger
from db import ALL_TABLES, ORDERS, CLIENTS, Database, InMemoryRepository
from errors import PersistenceError
from handlers import OrderService


CONFIG_ENV = [
    "STORAGE_BACKEND", "STORAGE_TIMEOUT", "SUPABASE_URL", "SUPABASE_KEY",
    "SUPABASE_BREAKER_THRESHOLD", "SUPABASE_BREAKER_TIMEOUT", "TIP_RATE",
    "FALLBACK_CACHE_ENABLED", "FALLBACK_CACHE_DIR", "ADMIN_EMAIL",
    "ADMIN_PASSWORD", "ADMIN_TOKEN", "HOST", "PORT", "CORS_ORIGINS", "LOG_LEVEL",
    "DISPLAY_TIMEZONE",
]


class FlakyRepository(InMemoryRepository):
    """In-memory repository that can be told to fail reads or specific deletes."""

    def __init__(self, table):
        super().__init__(table)
        self.fail_reads = False
        self.fail_delete_ids = set()

    async def list(self, order_by=None, descending=False, filters=None):
        if self.fail_reads:
            raise PersistenceError(f"Database unavailable ({self.table})")
        return await super().list(order_by, descending, filters)

    async def delete(self, record_id):
        if record_id in self.fail_delete_ids:
            raise PersistenceError(f"Database error ({self.table})")
        await super().delete(record_id)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in CONFIG_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("FALLBACK_CACHE_DIR", str(tmp_path / "cache"))
    return monkeypatch


@pytest.fixture
def db():
    return Database.in_memory()


@pytest.fixture
def flaky_db():
    repos = {t: InMemoryRepository(t) for t in ALL_TABLES}
    repos[ORDERS] = FlakyRepository(ORDERS)
    repos[CLIENTS] = FlakyRepository(CLIENTS)
    return Database(repos)


@pytest.fixture
def cache(tmp_path):
    return LocalSnapshotStore(str(tmp_path / "cache"))


@pytest.fixture
def catalog(db):
    return CatalogService(db)


@pytest.fixture
def ledger(db, cache):
    return ClientLedger(db, cache)


@pytest.fixture
def orders(db, ledger, cache):
    return OrderService(db, ledger, cache, tip_rate=0.10)


@pytest.fixture
async def menu_items(catalog):
    """A category with a Taco (150) and two sauces: free Verde, Habanero (+5)."""
    tacos = await catalog.create_category({"name": "Tacos"})
    taco = await catalog.create_product({
        "name": "Taco",
        "description": "Taco de asada",
        "price": 150,
        "category_id": tacos.id,
    })
    verde = await catalog.create_sauce({"name": "Verde", "spice": 2})
    habanero = await catalog.create_sauce({"name": "Habanero", "price": 5, "spice": 5})
    return {"category": tacos, "taco": taco, "verde": verde, "habanero": habanero}


def checkout_payload(product_id, sauce_ids=(), quantity=2, phone="5551234567", **extra):
    payload = {
        "customer_name": "Ana López",
        "customer_phone": phone,
        "address": "Av. Juárez 12",
        "items": [{"product_id": product_id, "quantity": quantity, "sauce_ids": list(sauce_ids)}],
    }
    payload.update(extra)
    return payload


@pytest.fixture
def make_checkout():
    return checkout_payload
