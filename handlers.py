"""
Order Handlers
==============
Order lifecycle orchestration between the HTTP layer and the domain modules.

Flow for a placed order:
1. Resolve line references against the catalog (prices never come from
   the request)
2. Build the order (validation, identifiers, totals)
3. Persist it
4. Record it in the client ledger

Status changes go through OrderStateMachine; bulk cleanup of completed
orders is best-effort, one independent delete per order.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Any, Optional

import structlog
from prometheus_client import Counter

from cache import ORDERS_KEY, Listing, LocalSnapshotStore
from cart import CartLine
from clients import ClientLedger
from db import Database
from errors import NotFoundError, PersistenceError, ValidationError
from models import (
    DeliveryType,
    Order,
    OrderStatus,
    ProductSnapshot,
    SauceSnapshot,
    TERMINAL_STATUSES,
)
from order import build_order, recompute_totals
from order_state import OrderStateMachine
import pricing


logger = structlog.get_logger(__name__)


bulk_deletes = Counter(
    'order_bulk_delete_total',
    'Per-order outcomes of the completed-orders cleanup',
    ['outcome']
)


CUSTOMER_FIELDS = ("customer_name", "customer_phone", "address")


@dataclass
class BulkDeleteResult:
    """Outcome of delete_completed()."""
    attempted: int = 0
    deleted: int = 0
    failed_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "deleted": self.deleted,
            "failed": len(self.failed_ids),
            "failed_ids": list(self.failed_ids),
        }


def _parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown order status: {value}", reason="unknown_status")


def _parse_delivery_type(value) -> Optional[DeliveryType]:
    if value is None or isinstance(value, DeliveryType):
        return value
    try:
        return DeliveryType(value)
    except ValueError:
        raise ValidationError(f"Unknown delivery type: {value}", reason="unknown_delivery_type")


class OrderService:
    """
    Orders: placement, editing, status changes and cleanup.

    Every public method raises ValidationError, NotFoundError or
    PersistenceError; nothing is retried.
    """

    def __init__(
        self,
        db: Database,
        ledger: ClientLedger,
        cache: Optional[LocalSnapshotStore] = None,
        tip_rate: float = pricing.DEFAULT_TIP_RATE,
        display_tz: Optional[tzinfo] = None
    ):
        self.db = db
        self.ledger = ledger
        self.cache = cache
        self.tip_rate = tip_rate
        self.display_tz = display_tz

    # ========================================================================
    # LINE RESOLUTION
    # ========================================================================

    async def resolve_lines(self, items: List[Dict[str, Any]]) -> List[CartLine]:
        """
        Turn {product_id, quantity, sauce_ids, notes} payloads into cart lines
        priced from the stored catalog.

        Raises:
            ValidationError: unknown product or sauce
        """
        lines = []

        for item in items:
            product_row = await self.db.products.get(item["product_id"])
            if product_row is None:
                raise ValidationError(
                    f"Unknown product: {item['product_id']}",
                    reason="unknown_product"
                )

            sauces = []
            for sauce_id in item.get("sauce_ids") or []:
                sauce_row = await self.db.sauces.get(sauce_id)
                if sauce_row is None:
                    raise ValidationError(f"Unknown sauce: {sauce_id}", reason="unknown_sauce")
                sauces.append(SauceSnapshot.from_dict(sauce_row))

            lines.append(CartLine(
                product=ProductSnapshot.from_dict(product_row),
                quantity=int(item.get("quantity", 1)),
                sauces=tuple(sauces),
                notes=item.get("notes") or "",
            ))

        return lines

    # ========================================================================
    # PLACEMENT
    # ========================================================================

    async def place_order(self, data: Dict[str, Any]) -> Order:
        """Storefront checkout: tip included."""
        return await self._create(data, include_tip=True)

    async def create_admin_order(self, data: Dict[str, Any]) -> Order:
        """Back-office order entry: no tip."""
        return await self._create(data, include_tip=False)

    async def _create(self, data: Dict[str, Any], include_tip: bool) -> Order:
        lines = await self.resolve_lines(data.get("items") or [])
        number = await self.db.orders.count() + 1

        order = build_order(
            lines,
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            address=data.get("address"),
            number=number,
            delivery_type=_parse_delivery_type(data.get("delivery_type")),
            notes=data.get("notes") or "",
            include_tip=include_tip,
            tip_rate=self.tip_rate,
            display_tz=self.display_tz,
        )

        await self.db.orders.insert(order.to_dict())

        logger.info(
            "order_placed",
            order_id=order.id,
            number=order.number,
            total=order.total,
            tip=order.tip,
            source="storefront" if include_tip else "admin"
        )

        try:
            await self.ledger.record_order(
                order.customer_phone,
                order.total,
                name=order.customer_name,
                address=order.address,
                email=data.get("email"),
            )
        except PersistenceError as e:
            # The order itself is stored; client statistics catch up on the next order
            logger.error("ledger_update_failed", order_id=order.id, error=e.message)

        return order

    # ========================================================================
    # READS
    # ========================================================================

    async def get_order(self, order_id: str) -> Order:
        row = await self.db.orders.get(order_id)
        if row is None:
            raise NotFoundError("Order", order_id)
        return Order.from_dict(row)

    async def list_orders(self, status=None) -> Listing:
        """
        Newest first, optionally filtered by status.

        Falls back to the local cache (degraded) when the database fails.
        """
        status = _parse_status(status) if status else None
        filters = {"status": status.value} if status else None

        try:
            rows = await self.db.orders.list(
                order_by="created_at", descending=True, filters=filters
            )
        except PersistenceError:
            cached = self.cache.load(ORDERS_KEY) if self.cache else None
            if cached is None:
                raise
            logger.warning("orders_served_from_cache", count=len(cached))
            if status:
                cached = [r for r in cached if r.get("status") == status.value]
            return Listing([Order.from_dict(r) for r in cached], degraded=True)

        if self.cache and not filters:
            self.cache.save(ORDERS_KEY, rows)
        return Listing([Order.from_dict(r) for r in rows])

    # ========================================================================
    # EDITS
    # ========================================================================

    async def _save(self, order: Order, changes: Dict[str, Any]) -> Order:
        row = await self.db.orders.update(order.id, changes)
        return Order.from_dict(row)

    async def update_order(self, order_id: str, changes: Dict[str, Any]) -> Order:
        """
        Replace customer fields, notes, delivery type and/or items.

        Replacing items recomputes the totals server-side. Status is not
        editable here (see set_status).
        """
        order = await self.get_order(order_id)

        for key in CUSTOMER_FIELDS:
            if key not in changes or changes[key] is None:
                continue
            value = str(changes[key]).strip()
            if not value:
                raise ValidationError(f"{key} cannot be blank", reason="missing_contact")
            setattr(order, key, value)

        if changes.get("notes") is not None:
            order.notes = changes["notes"]

        if changes.get("delivery_type") is not None:
            order.delivery_type = _parse_delivery_type(changes["delivery_type"])

        if changes.get("items") is not None:
            lines = await self.resolve_lines(changes["items"])
            recompute_totals(order, lines, tip_rate=self.tip_rate)

        order.updated_at = datetime.now(timezone.utc).isoformat()

        payload = order.to_dict()
        payload.pop("id")
        updated = await self._save(order, payload)

        logger.info("order_updated", order_id=order_id, total=updated.total)
        return updated

    # ========================================================================
    # STATUS
    # ========================================================================

    async def _apply(self, order_id: str, action) -> Order:
        order = await self.get_order(order_id)
        previous = order.status
        machine = OrderStateMachine(order)

        action(machine)

        updated = await self._save(order, {
            "status": order.status.value,
            "updated_at": order.updated_at,
            "status_history": machine.get_history(),
        })

        logger.info(
            "order_status_changed",
            order_id=order_id,
            from_status=previous.value,
            to_status=updated.status.value
        )
        return updated

    async def advance(self, order_id: str) -> Order:
        return await self._apply(order_id, lambda m: m.advance())

    async def cancel(self, order_id: str, reason: Optional[str] = None) -> Order:
        return await self._apply(order_id, lambda m: m.cancel(reason))

    async def set_status(self, order_id: str, status) -> Order:
        """Explicit status change, validated against the transition table."""
        target = _parse_status(status)
        return await self._apply(order_id, lambda m: m.transition(target, reason="set_status"))

    # ========================================================================
    # DELETION
    # ========================================================================

    async def delete_order(self, order_id: str):
        await self.db.orders.delete(order_id)
        logger.info("order_deleted", order_id=order_id)

    async def delete_completed(self) -> BulkDeleteResult:
        """
        Delete every delivered or cancelled order.

        Each delete is issued independently and concurrently; a failure is
        counted and reported, never raised.
        """
        rows = await self.db.orders.list()
        terminal = {s.value for s in TERMINAL_STATUSES}
        ids = [row["id"] for row in rows if row.get("status") in terminal]

        result = BulkDeleteResult(attempted=len(ids))
        if not ids:
            return result

        outcomes = await asyncio.gather(
            *(self.db.orders.delete(order_id) for order_id in ids),
            return_exceptions=True
        )

        for order_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                result.failed_ids.append(order_id)
                bulk_deletes.labels(outcome="failed").inc()
                logger.warning(
                    "completed_order_delete_failed",
                    order_id=order_id,
                    error=str(outcome)
                )
            else:
                result.deleted += 1
                bulk_deletes.labels(outcome="deleted").inc()

        logger.info(
            "completed_orders_deleted",
            attempted=result.attempted,
            deleted=result.deleted,
            failed=len(result.failed_ids)
        )
        return result
