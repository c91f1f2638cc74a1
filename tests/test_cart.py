import pytest

from cart import (
    AddItem,
    CartStore,
    ClearCart,
    EMPTY_CART,
    RemoveItem,
    SetNotes,
    UpdateQuantity,
    add_item,
    reduce_cart,
    remove_item,
    update_quantity,
)
from errors import ValidationError
from models import Product, ProductSnapshot, Sauce, SauceSnapshot


TACO = ProductSnapshot(id="p1", name="Taco", price=150.0)
QUESADILLA = Product(id="p2", name="Quesadilla", description="Queso", price=90.0)
VERDE = SauceSnapshot(id="s1", name="Verde")
ROJA = Sauce(id="s2", name="Roja", price=3.0, spice=3)


def test_identical_configuration_merges():
    cart = add_item(EMPTY_CART, TACO, notes="sin cebolla", sauces=[VERDE, ROJA])
    cart = add_item(cart, TACO, notes="sin cebolla", sauces=[ROJA, VERDE])
    assert len(cart.lines) == 1
    assert cart.lines[0].quantity == 2


def test_different_notes_or_sauces_make_new_lines():
    cart = add_item(EMPTY_CART, TACO)
    cart = add_item(cart, TACO, notes="extra limón")
    cart = add_item(cart, TACO, sauces=[VERDE])
    assert [line.quantity for line in cart.lines] == [1, 1, 1]


def test_add_accepts_catalog_product_and_sauce():
    cart = add_item(EMPTY_CART, QUESADILLA, sauces=[ROJA])
    line = cart.lines[0]
    assert isinstance(line.product, ProductSnapshot)
    assert line.line_total == 93.0


def test_operations_return_new_snapshots():
    cart = add_item(EMPTY_CART, TACO)
    assert EMPTY_CART.is_empty
    assert not cart.is_empty


def test_update_quantity_zero_equals_remove():
    cart = add_item(add_item(EMPTY_CART, TACO), QUESADILLA)
    assert update_quantity(cart, 0, 0) == remove_item(cart, 0)


def test_update_quantity_sets_value():
    cart = update_quantity(add_item(EMPTY_CART, TACO), 0, 4)
    assert cart.item_count == 4
    assert cart.total == 600.0


def test_bad_index_is_rejected():
    with pytest.raises(ValidationError) as exc:
        remove_item(EMPTY_CART, 0)
    assert exc.value.reason == "cart_index"


def test_totals_include_tip():
    cart = update_quantity(add_item(EMPTY_CART, TACO, sauces=[VERDE]), 0, 2)
    totals = cart.totals(tip_rate=0.10)
    assert (totals.subtotal, totals.tip, totals.total) == (300.0, 30.0, 330.0)


def test_reducer_clear_drops_lines_and_notes():
    cart = reduce_cart(EMPTY_CART, AddItem(product=TACO))
    cart = reduce_cart(cart, SetNotes(notes="tocar el timbre"))
    cart = reduce_cart(cart, ClearCart())
    assert cart == EMPTY_CART


def test_reducer_rejects_unknown_action():
    with pytest.raises(TypeError):
        reduce_cart(EMPTY_CART, "add")


def test_store_notifies_subscribers():
    store = CartStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.add(TACO)
    store.add(TACO)
    store.dispatch(UpdateQuantity(index=0, quantity=5))
    unsubscribe()
    store.dispatch(RemoveItem(index=0))

    assert [c.item_count for c in seen] == [1, 2, 5]
    assert store.state.is_empty
