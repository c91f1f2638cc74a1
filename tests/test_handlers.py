import pytest

from cache import ORDERS_KEY
from catalog import CatalogService
from clients import ClientLedger
from errors import NotFoundError, PersistenceError, StateTransitionError, ValidationError
from handlers import OrderService
from models import OrderStatus


async def test_checkout_scenario(orders, menu_items, make_checkout):
    order = await orders.place_order(
        make_checkout(menu_items["taco"].id, [menu_items["verde"].id])
    )
    assert (order.subtotal, order.tip, order.total) == (300.0, 30.0, 330.0)
    assert order.number == 1
    assert order.status == OrderStatus.PENDING


async def test_prices_come_from_catalog(orders, menu_items, make_checkout):
    payload = make_checkout(menu_items["taco"].id, [menu_items["habanero"].id], quantity=1)
    payload["items"][0]["price"] = 1
    order = await orders.place_order(payload)
    assert order.subtotal == 155.0


async def test_numbers_are_sequential(orders, menu_items, make_checkout):
    first = await orders.place_order(make_checkout(menu_items["taco"].id))
    second = await orders.create_admin_order(make_checkout(menu_items["taco"].id))
    assert (first.number, second.number) == (1, 2)
    assert second.tip == 0.0


async def test_orders_from_same_phone_share_one_client(orders, ledger, db, menu_items, make_checkout):
    await orders.place_order(make_checkout(menu_items["taco"].id))
    await orders.place_order(make_checkout(menu_items["taco"].id, quantity=1))

    assert await db.clients.count() == 1
    client = await ledger.find_by_phone("5551234567")
    assert client.order_count == 2
    assert client.total_spent == 330.0 + 165.0


async def test_checkout_with_taken_email_keeps_emails_unique(orders, ledger, db, menu_items, make_checkout):
    await ledger.create_client({"phone": "111", "name": "Ana", "address": "Centro", "email": "ana@example.com"})
    await orders.place_order(make_checkout(menu_items["taco"].id, phone="222", email="ana@example.com"))

    assert len(await db.clients.list(filters={"email": "ana@example.com"})) == 1
    newcomer = await ledger.find_by_phone("222")
    assert newcomer.order_count == 1
    assert newcomer.email is None


async def test_validation_happens_before_persistence(orders, db, menu_items, make_checkout):
    with pytest.raises(ValidationError):
        await orders.place_order(make_checkout(menu_items["taco"].id, customer_phone=""))
    with pytest.raises(ValidationError):
        await orders.place_order(make_checkout("unknown-product"))
    assert await db.orders.count() == 0
    assert await db.clients.count() == 0


async def test_lifecycle_persists_status(orders, menu_items, make_checkout):
    order = await orders.place_order(make_checkout(menu_items["taco"].id))

    await orders.advance(order.id)
    await orders.set_status(order.id, "ready")
    stored = await orders.get_order(order.id)

    assert stored.status == OrderStatus.READY
    assert [h["status"] for h in stored.status_history] == ["pending", "preparing", "ready"]

    with pytest.raises(StateTransitionError):
        await orders.set_status(order.id, "pending")


async def test_cancelled_order_cannot_advance(orders, menu_items, make_checkout):
    order = await orders.place_order(make_checkout(menu_items["taco"].id))
    await orders.cancel(order.id, "sin existencias")
    with pytest.raises(StateTransitionError):
        await orders.advance(order.id)


async def test_update_recomputes_totals(orders, menu_items, make_checkout):
    order = await orders.place_order(make_checkout(menu_items["taco"].id))
    updated = await orders.update_order(order.id, {
        "address": "Nueva 5",
        "items": [{"product_id": menu_items["taco"].id, "quantity": 1, "sauce_ids": []}],
        "total": 1,
    })
    assert updated.address == "Nueva 5"
    assert (updated.subtotal, updated.tip, updated.total) == (150.0, 15.0, 165.0)


async def test_update_rejects_blank_contact(orders, menu_items, make_checkout):
    order = await orders.place_order(make_checkout(menu_items["taco"].id))
    with pytest.raises(ValidationError):
        await orders.update_order(order.id, {"customer_name": " "})


async def test_unknown_order(orders):
    with pytest.raises(NotFoundError):
        await orders.get_order("TAR-0-zzzz")
    with pytest.raises(NotFoundError):
        await orders.delete_order("TAR-0-zzzz")


async def test_list_orders_newest_first_with_filter(orders, menu_items, make_checkout):
    first = await orders.place_order(make_checkout(menu_items["taco"].id))
    second = await orders.place_order(make_checkout(menu_items["taco"].id))
    await orders.advance(first.id)

    everything = await orders.list_orders()
    assert [o.id for o in everything.items] == [second.id, first.id]

    preparing = await orders.list_orders("preparing")
    assert [o.id for o in preparing.items] == [first.id]


@pytest.fixture
async def flaky_orders(flaky_db, cache):
    catalog = CatalogService(flaky_db)
    taco = await catalog.create_product({"name": "Taco", "description": "Asada", "price": 150})
    service = OrderService(flaky_db, ClientLedger(flaky_db, cache), cache)
    return service, taco


async def test_delete_completed_is_best_effort(flaky_orders, flaky_db, make_checkout):
    service, taco = flaky_orders
    placed = [await service.place_order(make_checkout(taco.id)) for _ in range(4)]

    await service.cancel(placed[0].id)
    await service.cancel(placed[1].id)
    for _ in range(3):
        await service.advance(placed[2].id)

    flaky_db.orders.fail_delete_ids = {placed[1].id}
    result = await service.delete_completed()

    assert result.attempted == 3
    assert result.deleted == 2
    assert result.failed_ids == [placed[1].id]

    remaining = {row["id"] for row in await flaky_db.orders.list()}
    assert remaining == {placed[1].id, placed[3].id}


async def test_delete_completed_with_nothing_to_do(orders):
    result = await orders.delete_completed()
    assert (result.attempted, result.deleted, result.failed_ids) == (0, 0, [])


async def test_list_orders_degrades_to_cache(flaky_orders, flaky_db, cache, make_checkout):
    service, taco = flaky_orders
    order = await service.place_order(make_checkout(taco.id))

    await service.list_orders()
    assert cache.load(ORDERS_KEY)[0]["id"] == order.id

    flaky_db.orders.fail_reads = True
    listing = await service.list_orders()
    assert listing.degraded
    assert [o.id for o in listing.items] == [order.id]


async def test_list_orders_with_empty_cache_propagates(flaky_orders, flaky_db):
    service, _ = flaky_orders
    flaky_db.orders.fail_reads = True
    with pytest.raises(PersistenceError):
        await service.list_orders()
