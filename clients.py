"""
Client Ledger
=============
Per-customer statistics (total spent, order count, last order) keyed by
phone number, plus the back-office client CRUD.

- record_order(): upsert-on-order; a known phone updates the existing
  client and leaves its contact fields untouched
- create/update: reject a phone or email already owned by another client
- delete: unconditional (orders keep their own customer snapshot)
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from cache import CLIENTS_KEY, Listing, LocalSnapshotStore
from db import Database
from errors import NotFoundError, PersistenceError, ValidationError
from models import Client, ClientStatus


logger = logging.getLogger(__name__)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _clean(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) and value.strip() else None


class ClientLedger:
    """Client records and their order statistics."""

    def __init__(self, db: Database, cache: Optional[LocalSnapshotStore] = None):
        self.db = db
        self.cache = cache

    # ========================================================================
    # LEDGER
    # ========================================================================

    async def find_by_phone(self, phone: str) -> Optional[Client]:
        rows = await self.db.clients.list(filters={"phone": phone.strip()})
        return Client.from_dict(rows[0]) if rows else None

    async def record_order(
        self,
        phone: str,
        order_total: float,
        name: str,
        address: str,
        email: Optional[str] = None
    ) -> Client:
        """
        Record a placed order against the client owning this phone.

        Args:
            phone: Dedup key
            order_total: Amount added to total_spent
            name / address / email: Used only when the client is new; an email
                already owned by another client is dropped

        Returns:
            The created or updated Client
        """
        now = datetime.now(timezone.utc).isoformat()
        existing = await self.find_by_phone(phone)

        if existing:
            row = await self.db.clients.update(existing.id, {
                "total_spent": round(existing.total_spent + order_total, 2),
                "order_count": existing.order_count + 1,
                "last_order_at": now,
            })
            client = Client.from_dict(row)
            logger.info(
                f"Client {client.id} updated: {client.order_count} orders, "
                f"${client.total_spent:.2f} spent"
            )
            return client

        email = _clean(email)
        if email and await self.db.clients.count(filters={"email": email}):
            # Phone is the key; an email already owned by another client is not copied
            logger.warning(
                f"Email on order from {phone.strip()} belongs to another client, not stored"
            )
            email = None

        client = Client(
            id=uuid.uuid4().hex,
            name=name.strip(),
            phone=phone.strip(),
            address=address.strip(),
            email=email,
            total_spent=round(order_total, 2),
            order_count=1,
            last_order_at=now,
            registered_at=now,
            status=ClientStatus.ACTIVE,
        )
        await self.db.clients.insert(client.to_dict())
        logger.info(f"Client {client.id} registered from first order")
        return client

    # ========================================================================
    # CRUD
    # ========================================================================

    async def _ensure_unique(
        self,
        phone: str,
        email: Optional[str],
        exclude_id: Optional[str] = None
    ):
        for key, value in (("phone", phone), ("email", email)):
            if not value:
                continue
            rows = await self.db.clients.list(filters={key: value})
            if any(row["id"] != exclude_id for row in rows):
                raise ValidationError(
                    "Another client already exists with this phone or email",
                    reason="duplicate_client"
                )

    def _require_contact(self, data: Dict[str, Any]):
        if any(_blank(data.get(k)) for k in ("name", "phone", "address")):
            raise ValidationError(
                "Name, phone and address are required",
                reason="missing_contact"
            )

    async def create_client(self, data: Dict[str, Any]) -> Client:
        self._require_contact(data)
        phone = data["phone"].strip()
        email = _clean(data.get("email"))
        await self._ensure_unique(phone, email)

        now = datetime.now(timezone.utc).isoformat()
        client = Client(
            id=uuid.uuid4().hex,
            name=data["name"].strip(),
            phone=phone,
            address=data["address"].strip(),
            email=email,
            total_spent=0.0,
            order_count=0,
            last_order_at=None,
            registered_at=now,
            status=ClientStatus(data.get("status") or ClientStatus.ACTIVE.value),
            notes=data.get("notes") or "",
        )
        await self.db.clients.insert(client.to_dict())
        logger.info(f"Client created: {client.id}")
        return client

    async def update_client(self, client_id: str, data: Dict[str, Any]) -> Client:
        """Replace contact fields; statistics are left alone."""
        await self.get_client(client_id)
        self._require_contact(data)

        phone = data["phone"].strip()
        email = _clean(data.get("email"))
        await self._ensure_unique(phone, email, exclude_id=client_id)

        row = await self.db.clients.update(client_id, {
            "name": data["name"].strip(),
            "phone": phone,
            "address": data["address"].strip(),
            "email": email,
            "notes": data.get("notes") or "",
            "status": ClientStatus(data.get("status") or ClientStatus.ACTIVE.value).value,
        })
        logger.info(f"Client updated: {client_id}")
        return Client.from_dict(row)

    async def delete_client(self, client_id: str):
        await self.db.clients.delete(client_id)
        logger.info(f"Client deleted: {client_id}")

    async def get_client(self, client_id: str) -> Client:
        row = await self.db.clients.get(client_id)
        if row is None:
            raise NotFoundError("Client", client_id)
        return Client.from_dict(row)

    async def list_clients(self) -> Listing:
        """Newest registration first; falls back to the local cache."""
        try:
            rows = await self.db.clients.list(order_by="registered_at", descending=True)
        except PersistenceError:
            cached = self.cache.load(CLIENTS_KEY) if self.cache else None
            if cached is None:
                raise
            return Listing([Client.from_dict(r) for r in cached], degraded=True)

        if self.cache:
            self.cache.save(CLIENTS_KEY, rows)
        return Listing([Client.from_dict(r) for r in rows])
