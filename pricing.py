"""
Pricing Module
==============
Line, subtotal, tip and total arithmetic shared by the cart,
the order builder and order edits.

Deterministic: same lines always produce the same totals.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Any, Iterable, Optional

from models import SauceSnapshot


logger = logging.getLogger(__name__)


# Default storefront tip (fraction of subtotal); overridden by TIP_RATE
DEFAULT_TIP_RATE = 0.10


@dataclass(frozen=True)
class OrderTotals:
    subtotal: float
    tip: float
    total: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def sauce_surcharge(sauces: Iterable[SauceSnapshot]) -> float:
    """Sum of sauce surcharges; a sauce without a price adds nothing."""
    return sum(sauce.surcharge for sauce in sauces)


def line_total(
    price: float,
    quantity: int,
    sauces: Iterable[SauceSnapshot] = ()
) -> float:
    """
    Total for one line.

    (product price + sum of sauce surcharges) * quantity

    Non-positive prices are passed through unchanged.
    """
    return round((price + sauce_surcharge(sauces)) * quantity, 2)


def subtotal(lines: Iterable[Any]) -> float:
    """
    Sum of line totals.

    Accepts anything with .product.price, .quantity and .sauces
    (CartLine, OrderLine).
    """
    return round(
        sum(line_total(line.product.price, line.quantity, line.sauces) for line in lines),
        2
    )


def tip_for(amount: float, rate: float = DEFAULT_TIP_RATE) -> float:
    return round(amount * rate, 2)


def item_count(lines: Iterable[Any]) -> int:
    return sum(line.quantity for line in lines)


def order_totals(
    lines: Iterable[Any],
    include_tip: bool = True,
    tip_rate: Optional[float] = None
) -> OrderTotals:
    """
    Compute subtotal, tip and total for a set of lines.

    Args:
        lines: Cart or order lines
        include_tip: Storefront orders carry a tip, admin-created orders do not
        tip_rate: Fraction of subtotal (defaults to DEFAULT_TIP_RATE)

    Returns:
        OrderTotals
    """
    lines = list(lines)
    rate = DEFAULT_TIP_RATE if tip_rate is None else tip_rate

    sub = subtotal(lines)
    tip = tip_for(sub, rate) if include_tip else 0.0
    totals = OrderTotals(subtotal=sub, tip=tip, total=round(sub + tip, 2))

    logger.debug(
        f"Totals computed: {len(lines)} lines, subtotal=${totals.subtotal:.2f}, "
        f"tip=${totals.tip:.2f}, total=${totals.total:.2f}"
    )

    return totals
