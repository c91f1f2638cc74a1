"""
Database Module
===============
Repository layer for products, categories, sauces, orders and clients.

- Repository: async CRUD contract every backend honours
- InMemoryRepository: per-instance state (tests, local development)
- SupabaseRepository: Supabase tables behind a circuit breaker and
  read timeouts; every backend failure surfaces as PersistenceError
- Database: one repository per entity, injected into the services

No retries: a failed call is reported to the caller as-is.
"""

import asyncio
import logging
from copy import deepcopy
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Any, Optional

from supabase import create_client, Client
from postgrest.exceptions import APIError

from errors import NotFoundError, PersistenceError


logger = logging.getLogger(__name__)


# Table names
PRODUCTS = "products"
CATEGORIES = "categories"
SAUCES = "sauces"
ORDERS = "orders"
CLIENTS = "clients"

ALL_TABLES = [PRODUCTS, CATEGORIES, SAUCES, ORDERS, CLIENTS]

# Entity names used in NotFoundError messages
ENTITY_NAMES = {
    PRODUCTS: "Product",
    CATEGORIES: "Category",
    SAUCES: "Sauce",
    ORDERS: "Order",
    CLIENTS: "Client",
}

# Configuration
CIRCUIT_BREAKER_THRESHOLD = 5
CIRCUIT_BREAKER_TIMEOUT = 30  # seconds
DEFAULT_TIMEOUT = 5.0  # seconds


# ============================================================================
# REPOSITORY CONTRACT
# ============================================================================

class Repository:
    """
    Async CRUD contract keyed by the record's "id".

    Records are plain JSON-compatible dicts.
    """

    def __init__(self, table: str):
        self.table = table

    @property
    def entity(self) -> str:
        return ENTITY_NAMES.get(self.table, self.table)

    async def list(
        self,
        order_by: Optional[str] = None,
        descending: bool = False,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def update(self, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply changes; raises NotFoundError for an unknown id."""
        raise NotImplementedError

    async def delete(self, record_id: str) -> None:
        """Remove a record; raises NotFoundError for an unknown id."""
        raise NotImplementedError

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        raise NotImplementedError


# ============================================================================
# IN-MEMORY BACKEND
# ============================================================================

def _matches(record: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(record.get(key) == value for key, value in filters.items())


class InMemoryRepository(Repository):
    """Dict-backed repository; copies on the way in and out."""

    def __init__(self, table: str):
        super().__init__(table)
        self._rows: Dict[str, Dict[str, Any]] = {}

    async def list(self, order_by=None, descending=False, filters=None):
        rows = [deepcopy(r) for r in self._rows.values() if _matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        return rows

    async def get(self, record_id):
        row = self._rows.get(record_id)
        return deepcopy(row) if row is not None else None

    async def insert(self, record):
        if "id" not in record:
            raise PersistenceError(f"{self.entity} record has no id")
        if record["id"] in self._rows:
            raise PersistenceError(f"{self.entity} already exists: {record['id']}")
        self._rows[record["id"]] = deepcopy(record)
        return deepcopy(record)

    async def update(self, record_id, changes):
        if record_id not in self._rows:
            raise NotFoundError(self.entity, record_id)
        self._rows[record_id].update(deepcopy(changes))
        return deepcopy(self._rows[record_id])

    async def delete(self, record_id):
        if record_id not in self._rows:
            raise NotFoundError(self.entity, record_id)
        del self._rows[record_id]

    async def count(self, filters=None):
        return sum(1 for r in self._rows.values() if _matches(r, filters))


# ============================================================================
# CIRCUIT BREAKER
# ============================================================================

class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """Stops calling a failing backend until the timeout elapses."""

    def __init__(
        self,
        threshold: int = CIRCUIT_BREAKER_THRESHOLD,
        timeout: int = CIRCUIT_BREAKER_TIMEOUT
    ):
        self.threshold = threshold
        self.timeout = timeout
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None

    def record_success(self):
        if self.state != CircuitState.CLOSED:
            logger.info("Circuit breaker closed (recovered)")
        self.failure_count = 0
        self.state = CircuitState.CLOSED

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now(timezone.utc)

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.threshold:
            self.state = CircuitState.OPEN
            logger.error(
                f"Circuit breaker opened "
                f"(failures: {self.failure_count})"
            )

    def can_execute(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if self.last_failure_time:
                elapsed = (datetime.now(timezone.utc) - self.last_failure_time).total_seconds()
                if elapsed >= self.timeout:
                    self.state = CircuitState.HALF_OPEN
                    logger.info("Circuit breaker half-open (testing)")
                    return True
            return False

        # HALF_OPEN - let one trial request through
        return True


# ============================================================================
# SUPABASE BACKEND
# ============================================================================

class SupabaseRepository(Repository):
    """
    One Supabase table.

    The supabase client is synchronous; calls run in the default executor
    with a timeout so a slow backend never stalls the event loop.
    """

    def __init__(
        self,
        client: Client,
        table: str,
        breaker: CircuitBreaker,
        timeout: float = DEFAULT_TIMEOUT
    ):
        super().__init__(table)
        self.client = client
        self.breaker = breaker
        self.timeout = timeout

    async def _run(self, operation: str, fn):
        if not self.breaker.can_execute():
            logger.warning(f"Circuit breaker open, skipping {operation} on {self.table}")
            raise PersistenceError(f"Database unavailable ({self.table})")

        loop = asyncio.get_running_loop()

        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(None, fn),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"{operation} timeout on {self.table}")
            self.breaker.record_failure()
            raise PersistenceError(f"Database timeout ({self.table})")
        except APIError as e:
            logger.error(f"{operation} error on {self.table}: {e.message}")
            self.breaker.record_failure()
            raise PersistenceError(f"Database error ({self.table}): {e.message}")
        except Exception as e:
            logger.error(f"{operation} error on {self.table}: {str(e)}")
            self.breaker.record_failure()
            raise PersistenceError(f"Database error ({self.table})")

        self.breaker.record_success()
        return result

    def _filtered(self, query, filters: Optional[Dict[str, Any]]):
        for key, value in (filters or {}).items():
            query = query.eq(key, value)
        return query

    async def list(self, order_by=None, descending=False, filters=None):
        def fn():
            query = self._filtered(self.client.table(self.table).select("*"), filters)
            if order_by:
                query = query.order(order_by, desc=descending)
            return query.execute()

        result = await self._run("list", fn)
        return result.data or []

    async def get(self, record_id):
        result = await self._run(
            "get",
            lambda: self.client.table(self.table).select("*").eq("id", record_id).execute()
        )
        return result.data[0] if result.data else None

    async def insert(self, record):
        result = await self._run(
            "insert",
            lambda: self.client.table(self.table).insert(record).execute()
        )
        return result.data[0] if result.data else record

    async def update(self, record_id, changes):
        result = await self._run(
            "update",
            lambda: self.client.table(self.table).update(changes).eq("id", record_id).execute()
        )
        if not result.data:
            raise NotFoundError(self.entity, record_id)
        return result.data[0]

    async def delete(self, record_id):
        result = await self._run(
            "delete",
            lambda: self.client.table(self.table).delete().eq("id", record_id).execute()
        )
        if not result.data:
            raise NotFoundError(self.entity, record_id)

    async def count(self, filters=None):
        result = await self._run(
            "count",
            lambda: self._filtered(
                self.client.table(self.table).select("id", count="exact"),
                filters
            ).execute()
        )
        return result.count or 0


# ============================================================================
# DATABASE CONTAINER
# ============================================================================

class Database:
    """Repositories for every entity, handed to the services."""

    def __init__(self, repositories: Dict[str, Repository], backend: str = "memory"):
        missing = [t for t in ALL_TABLES if t not in repositories]
        if missing:
            raise ValueError(f"Missing repositories: {', '.join(missing)}")

        self.backend = backend
        self.products = repositories[PRODUCTS]
        self.categories = repositories[CATEGORIES]
        self.sauces = repositories[SAUCES]
        self.orders = repositories[ORDERS]
        self.clients = repositories[CLIENTS]

    @classmethod
    def in_memory(cls) -> "Database":
        return cls({t: InMemoryRepository(t) for t in ALL_TABLES}, backend="memory")

    @classmethod
    def supabase(
        cls,
        url: str,
        key: str,
        timeout: float = DEFAULT_TIMEOUT,
        breaker_threshold: int = CIRCUIT_BREAKER_THRESHOLD,
        breaker_timeout: int = CIRCUIT_BREAKER_TIMEOUT
    ) -> "Database":
        client = create_client(url, key)
        breaker = CircuitBreaker(breaker_threshold, breaker_timeout)
        logger.info("Supabase client initialized")
        return cls(
            {t: SupabaseRepository(client, t, breaker, timeout) for t in ALL_TABLES},
            backend="supabase"
        )


def create_database(config) -> Database:
    """Build the Database for the configured backend."""
    if config.storage.backend == "supabase":
        return Database.supabase(
            config.supabase.url,
            config.supabase.key,
            timeout=config.storage.timeout,
            breaker_threshold=config.supabase.breaker_threshold,
            breaker_timeout=config.supabase.breaker_timeout,
        )

    logger.info("Using in-memory database")
    return Database.in_memory()
