"""
Cart Module
===========
Storefront cart as immutable snapshots plus a reducer.

- Cart / CartLine are frozen; every operation returns a new Cart
- reduce_cart() applies a tagged CartAction to a snapshot
- CartStore holds the current snapshot for one shopper and is passed
  explicitly to whoever needs it (no module-level cart)

Totals are derived from the lines on every read (see pricing).
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Any, Optional, Tuple, Union

from errors import ValidationError
from models import Product, ProductSnapshot, Sauce, SauceSnapshot
import pricing


logger = logging.getLogger(__name__)


# ============================================================================
# SNAPSHOTS
# ============================================================================

@dataclass(frozen=True)
class CartLine:
    product: ProductSnapshot
    quantity: int = 1
    sauces: Tuple[SauceSnapshot, ...] = ()
    notes: str = ""

    @property
    def sauce_ids(self) -> List[str]:
        return sorted(sauce.id for sauce in self.sauces)

    @property
    def line_total(self) -> float:
        return pricing.line_total(self.product.price, self.quantity, self.sauces)

    def same_configuration(
        self,
        product_id: str,
        notes: str,
        sauce_ids: List[str]
    ) -> bool:
        """Same product, same notes and the same set of sauces."""
        return (
            self.product.id == product_id
            and self.notes == notes
            and self.sauce_ids == sauce_ids
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "price": self.product.price,
            },
            "quantity": self.quantity,
            "sauces": [
                {"id": s.id, "name": s.name, "price": s.price, "spice": s.spice}
                for s in self.sauces
            ],
            "notes": self.notes,
            "line_total": self.line_total,
        }


@dataclass(frozen=True)
class Cart:
    lines: Tuple[CartLine, ...] = ()
    notes: str = ""

    @property
    def total(self) -> float:
        """Sum of line totals (before tip)."""
        return pricing.subtotal(self.lines)

    @property
    def item_count(self) -> int:
        return pricing.item_count(self.lines)

    @property
    def is_empty(self) -> bool:
        return len(self.lines) == 0

    def totals(self, tip_rate: Optional[float] = None) -> pricing.OrderTotals:
        """Checkout totals including the storefront tip."""
        return pricing.order_totals(self.lines, include_tip=True, tip_rate=tip_rate)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "notes": self.notes,
            "total": self.total,
            "item_count": self.item_count,
        }


EMPTY_CART = Cart()


# ============================================================================
# PURE OPERATIONS
# ============================================================================

def _snapshot(product: Union[Product, ProductSnapshot]) -> ProductSnapshot:
    if isinstance(product, ProductSnapshot):
        return product
    return ProductSnapshot.from_product(product)


def _sauce_snapshots(sauces) -> Tuple[SauceSnapshot, ...]:
    return tuple(
        s if isinstance(s, SauceSnapshot) else SauceSnapshot.from_sauce(s)
        for s in sauces
    )


def _check_index(cart: Cart, index: int):
    if not 0 <= index < len(cart.lines):
        raise ValidationError(
            f"Cart line {index} does not exist (cart has {len(cart.lines)} lines)",
            reason="cart_index"
        )


def add_item(
    cart: Cart,
    product: Union[Product, ProductSnapshot],
    notes: str = "",
    sauces=()
) -> Cart:
    """
    Add one unit of a product.

    Merges into an existing line when product id, notes and the sorted
    sauce ids all match; otherwise appends a new line with quantity 1.
    """
    snapshot = _snapshot(product)
    sauce_snaps = _sauce_snapshots(sauces)
    wanted_ids = sorted(s.id for s in sauce_snaps)

    for idx, line in enumerate(cart.lines):
        if line.same_configuration(snapshot.id, notes, wanted_ids):
            merged = replace(line, quantity=line.quantity + 1)
            lines = cart.lines[:idx] + (merged,) + cart.lines[idx + 1:]
            return replace(cart, lines=lines)

    new_line = CartLine(product=snapshot, quantity=1, sauces=sauce_snaps, notes=notes)
    return replace(cart, lines=cart.lines + (new_line,))


def remove_item(cart: Cart, index: int) -> Cart:
    _check_index(cart, index)
    return replace(cart, lines=cart.lines[:index] + cart.lines[index + 1:])


def update_quantity(cart: Cart, index: int, quantity: int) -> Cart:
    """Set a line's quantity; anything below 1 removes the line."""
    _check_index(cart, index)

    if quantity < 1:
        return remove_item(cart, index)

    line = replace(cart.lines[index], quantity=quantity)
    return replace(cart, lines=cart.lines[:index] + (line,) + cart.lines[index + 1:])


def clear_cart(cart: Cart) -> Cart:
    """Drop every line and the order-level notes."""
    return EMPTY_CART


def set_notes(cart: Cart, notes: str) -> Cart:
    return replace(cart, notes=notes)


# ============================================================================
# ACTIONS / REDUCER
# ============================================================================

@dataclass(frozen=True)
class AddItem:
    product: Union[Product, ProductSnapshot]
    notes: str = ""
    sauces: Tuple[Union[Sauce, SauceSnapshot], ...] = ()


@dataclass(frozen=True)
class UpdateQuantity:
    index: int
    quantity: int


@dataclass(frozen=True)
class RemoveItem:
    index: int


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class SetNotes:
    notes: str


CartAction = Union[AddItem, UpdateQuantity, RemoveItem, ClearCart, SetNotes]


def reduce_cart(cart: Cart, action: CartAction) -> Cart:
    """Apply one action to a snapshot and return the next snapshot."""
    if isinstance(action, AddItem):
        return add_item(cart, action.product, action.notes, action.sauces)
    if isinstance(action, UpdateQuantity):
        return update_quantity(cart, action.index, action.quantity)
    if isinstance(action, RemoveItem):
        return remove_item(cart, action.index)
    if isinstance(action, ClearCart):
        return clear_cart(cart)
    if isinstance(action, SetNotes):
        return set_notes(cart, action.notes)
    raise TypeError(f"Unknown cart action: {action!r}")


# ============================================================================
# STATE CONTAINER
# ============================================================================

class CartStore:
    """
    Holds the current cart snapshot for one shopper.

    Each mutation replaces the whole snapshot. Subscribers are called
    with the new snapshot after every dispatch.
    """

    def __init__(self, initial: Cart = EMPTY_CART):
        self._state = initial
        self._listeners: List[Callable[[Cart], None]] = []

    @property
    def state(self) -> Cart:
        return self._state

    def subscribe(self, listener: Callable[[Cart], None]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: CartAction) -> Cart:
        self._state = reduce_cart(self._state, action)
        logger.debug(
            f"Cart action {type(action).__name__}: "
            f"{len(self._state.lines)} lines, {self._state.item_count} items"
        )
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    # Convenience wrappers

    def add(self, product, notes: str = "", sauces=()) -> Cart:
        return self.dispatch(AddItem(product=product, notes=notes, sauces=tuple(sauces)))

    def update_quantity(self, index: int, quantity: int) -> Cart:
        return self.dispatch(UpdateQuantity(index=index, quantity=quantity))

    def remove(self, index: int) -> Cart:
        return self.dispatch(RemoveItem(index=index))

    def clear(self) -> Cart:
        return self.dispatch(ClearCart())

    def set_notes(self, notes: str) -> Cart:
        return self.dispatch(SetNotes(notes=notes))
