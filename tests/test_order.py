import re
import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from cart import CartLine
from errors import ValidationError
from models import DeliveryType, OrderStatus, ProductSnapshot, SauceSnapshot
from order import build_order, format_display_timestamp, generate_order_id, recompute_totals


TACO = ProductSnapshot(id="p1", name="Taco", price=150.0)
VERDE = SauceSnapshot(id="s1", name="Verde")
NOW = datetime(2026, 10, 19, 14, 5, tzinfo=timezone.utc)


def _lines(quantity=2):
    return [CartLine(product=TACO, quantity=quantity, sauces=(VERDE,))]


def _build(**overrides):
    kwargs = dict(
        customer_name="Ana",
        customer_phone="5551234567",
        address="Av. Juárez 12",
        number=1,
        tip_rate=0.10,
        now=NOW,
    )
    kwargs.update(overrides)
    return build_order(kwargs.pop("lines", _lines()), **kwargs)


def test_order_id_format():
    assert re.fullmatch(r"TAR-\d+-[0-9a-z]{4}", generate_order_id(NOW))


def test_display_timestamp_is_spanish():
    assert format_display_timestamp(NOW) == "19 de octubre de 2026, 14:05"


def test_order_id_millis_are_epoch_millis():
    millis = int(generate_order_id().split("-")[1])
    assert abs(millis - time.time() * 1000) < 5000


def test_display_timestamp_uses_local_wall_clock():
    mexico = ZoneInfo("America/Mexico_City")
    assert format_display_timestamp(NOW, mexico) == "19 de octubre de 2026, 08:05"

    order = _build(display_tz=mexico)
    assert order.created_at_display == "19 de octubre de 2026, 08:05"
    assert order.created_at == "2026-10-19T14:05:00+00:00"


def test_default_creation_time_is_utc():
    order = _build(now=None)
    assert order.created_at.endswith("+00:00")
    assert datetime.fromisoformat(order.created_at).utcoffset().total_seconds() == 0


def test_defaults_and_totals():
    order = _build()
    assert order.status == OrderStatus.PENDING
    assert order.delivery_type == DeliveryType.HOME_DELIVERY
    assert (order.subtotal, order.tip, order.total) == (300.0, 30.0, 330.0)
    assert order.created_at == NOW.isoformat()
    assert order.status_history[0]["status"] == "pending"


def test_lines_are_snapshots_with_totals():
    line = _build().items[0]
    assert line.product.name == "Taco"
    assert line.sauces[0].name == "Verde"
    assert line.line_total == 300.0


def test_admin_order_has_no_tip():
    order = _build(include_tip=False)
    assert order.tip == 0.0
    assert order.total == 300.0


@pytest.mark.parametrize("field", ["customer_name", "customer_phone", "address"])
def test_missing_contact_is_rejected(field):
    with pytest.raises(ValidationError) as exc:
        _build(**{field: "  "})
    assert exc.value.reason == "missing_contact"


def test_empty_cart_is_rejected():
    with pytest.raises(ValidationError) as exc:
        _build(lines=[])
    assert exc.value.reason == "empty_cart"


def test_recompute_keeps_tip_only_when_present():
    tipped = recompute_totals(_build(), _lines(quantity=1), tip_rate=0.10)
    assert (tipped.subtotal, tipped.tip, tipped.total) == (150.0, 15.0, 165.0)

    tipless = recompute_totals(_build(include_tip=False), _lines(quantity=1), tip_rate=0.10)
    assert (tipless.tip, tipless.total) == (0.0, 150.0)
