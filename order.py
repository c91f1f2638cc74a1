"""
Order Module
============
Turns a cart (or admin-entered lines) plus customer contact details into
a persistable Order.

- Presence checks on name, phone and address; at least one line
- Generated identifiers: TAR-<epoch millis>-<4 base36 chars>
- Sequential display number supplied by the caller (stored count + 1)
- Machine (ISO-8601) and human-readable (Spanish) timestamps
- Totals always computed here, never taken from the request

Validation failures raise ValidationError before anything is persisted.
"""

import logging
import random
import string
from datetime import datetime, timezone, tzinfo
from typing import Iterable, List, Any, Optional

from prometheus_client import Counter, Histogram

from errors import ValidationError
from models import (
    DeliveryType,
    Order,
    OrderLine,
    OrderStatus,
    ProductSnapshot,
    SauceSnapshot,
)
import pricing


logger = logging.getLogger(__name__)


# ============================================================================
# METRICS
# ============================================================================

orders_total = Counter(
    'orders_total',
    'Orders built',
    ['source']
)
order_value = Histogram(
    'order_value',
    'Order total distribution'
)
order_validation_failures = Counter(
    'order_validation_failures_total',
    'Order validation failures',
    ['reason']
)


# ============================================================================
# IDENTIFIERS & TIMESTAMPS
# ============================================================================

ORDER_ID_PREFIX = "TAR"
_BASE36 = string.digits + string.ascii_lowercase

SPANISH_MONTHS = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)


def _as_utc(moment: datetime) -> datetime:
    # Naive datetimes are taken to be UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def generate_order_id(now: Optional[datetime] = None) -> str:
    """Timestamp plus a short random suffix, e.g. TAR-1760883900000-k3x9."""
    now = _as_utc(now or datetime.now(timezone.utc))
    millis = int(now.timestamp() * 1000)
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"{ORDER_ID_PREFIX}-{millis}-{suffix}"


def format_display_timestamp(moment: datetime, display_tz: Optional[tzinfo] = None) -> str:
    """
    Human-readable date in Spanish, e.g. '19 de octubre de 2026, 14:05'.

    Shown in display_tz (the restaurant's wall clock); UTC when not given.
    """
    moment = _as_utc(moment).astimezone(display_tz or timezone.utc)
    month = SPANISH_MONTHS[moment.month - 1]
    return f"{moment.day} de {month} de {moment.year}, {moment:%H:%M}"


# ============================================================================
# VALIDATION
# ============================================================================

def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def validate_contact(customer_name: str, customer_phone: str, address: str):
    """
    Presence check only; phone/address format belongs to the form layer.

    Raises:
        ValidationError: naming every missing field
    """
    missing = [
        label for label, value in (
            ("name", customer_name),
            ("phone", customer_phone),
            ("address", address),
        )
        if _is_blank(value)
    ]

    if missing:
        order_validation_failures.labels(reason='missing_contact').inc()
        raise ValidationError(
            f"Incomplete order data: missing customer {', '.join(missing)}",
            reason="missing_contact"
        )


def to_order_lines(lines: Iterable[Any]) -> List[OrderLine]:
    """
    Freeze cart lines (or anything shaped like one) into OrderLines.

    Raises:
        ValidationError: on an empty list or a quantity below 1
    """
    order_lines = []

    for line in lines:
        if line.quantity < 1:
            order_validation_failures.labels(reason='invalid_quantity').inc()
            raise ValidationError(
                f"Invalid quantity for {line.product.name}: {line.quantity}",
                reason="invalid_quantity"
            )

        product = ProductSnapshot(
            id=str(line.product.id),
            name=line.product.name,
            price=float(line.product.price),
            description=getattr(line.product, "description", None),
            image=getattr(line.product, "image", None),
        )
        sauces = tuple(
            SauceSnapshot(id=str(s.id), name=s.name, price=s.price, spice=s.spice)
            for s in line.sauces
        )

        order_lines.append(OrderLine(
            product=product,
            quantity=int(line.quantity),
            sauces=sauces,
            notes=line.notes or "",
            line_total=pricing.line_total(product.price, line.quantity, sauces),
        ))

    if not order_lines:
        order_validation_failures.labels(reason='empty_cart').inc()
        raise ValidationError("Incomplete order data: the cart is empty", reason="empty_cart")

    return order_lines


# ============================================================================
# BUILDER
# ============================================================================

def build_order(
    lines: Iterable[Any],
    customer_name: str,
    customer_phone: str,
    address: str,
    number: int,
    delivery_type: Optional[DeliveryType] = None,
    notes: str = "",
    include_tip: bool = True,
    tip_rate: Optional[float] = None,
    now: Optional[datetime] = None,
    display_tz: Optional[tzinfo] = None
) -> Order:
    """
    Build a new pending order.

    Args:
        lines: Cart lines or equivalent line payloads
        customer_name / customer_phone / address: Required contact fields
        number: Display number (stored order count + 1)
        delivery_type: Defaults to home delivery
        notes: Order-level notes
        include_tip: Storefront checkout True, admin-created orders False
        tip_rate: Fraction of subtotal
        now: Creation time (UTC); defaults to now
        display_tz: Timezone for the human-readable timestamp

    Returns:
        Order (not yet persisted)

    Raises:
        ValidationError: Missing contact field or no lines
    """
    validate_contact(customer_name, customer_phone, address)
    order_lines = to_order_lines(lines)

    now = _as_utc(now or datetime.now(timezone.utc))
    totals = pricing.order_totals(order_lines, include_tip=include_tip, tip_rate=tip_rate)
    created_at = now.isoformat()

    order = Order(
        id=generate_order_id(now),
        number=number,
        customer_name=customer_name.strip(),
        customer_phone=customer_phone.strip(),
        address=address.strip(),
        items=order_lines,
        subtotal=totals.subtotal,
        tip=totals.tip,
        total=totals.total,
        status=OrderStatus.PENDING,
        delivery_type=delivery_type or DeliveryType.HOME_DELIVERY,
        notes=notes or "",
        created_at=created_at,
        created_at_display=format_display_timestamp(now, display_tz),
        updated_at=created_at,
        status_history=[{"status": OrderStatus.PENDING.value, "at": created_at, "reason": "created"}],
    )

    orders_total.labels(source="storefront" if include_tip else "admin").inc()
    order_value.observe(order.total)

    logger.info(
        f"Order built: {order.id} #{order.number} "
        f"({len(order_lines)} lines, total=${order.total:.2f})"
    )

    return order


def recompute_totals(order: Order, lines: Iterable[Any], tip_rate: Optional[float] = None) -> Order:
    """
    Replace an order's lines and recompute its totals.

    An order that carried a tip keeps carrying one; admin orders stay tipless.
    """
    order_lines = to_order_lines(lines)
    totals = pricing.order_totals(order_lines, include_tip=order.tip > 0, tip_rate=tip_rate)

    order.items = order_lines
    order.subtotal = totals.subtotal
    order.tip = totals.tip
    order.total = totals.total
    return order
