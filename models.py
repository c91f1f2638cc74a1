"""
Domain Models
=============
Catalog, order and client records plus the enums they share.

Order lines are denormalised snapshots: an order keeps the product name,
price and sauces as they were when it was placed.
"""

from dataclasses import dataclass, field, asdict, fields as dataclass_fields
from enum import Enum
from typing import Dict, List, Any, Optional, Tuple


def _pick(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the keys the dataclass declares (rows may carry extra columns)."""
    names = {f.name for f in dataclass_fields(cls)}
    return {k: v for k, v in data.items() if k in names}


# ============================================================================
# ENUMS
# ============================================================================

class OrderStatus(Enum):
    """
    Order lifecycle states.

    State flow:
        PENDING -> PREPARING -> READY -> DELIVERED
        (any non-terminal) -> CANCELLED

    Terminal states: DELIVERED, CANCELLED
    """
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class DeliveryType(Enum):
    HOME_DELIVERY = "home-delivery"
    PICKUP = "pickup"


class ClientStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# ============================================================================
# CATALOG
# ============================================================================

@dataclass
class Category:
    id: str
    name: str
    description: str = ""
    color: str = "#FF0000"
    icon: str = "default-icon"
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls(**_pick(cls, data))


@dataclass
class Product:
    id: str
    name: str
    description: str
    price: float
    category_id: Optional[str] = None
    image: Optional[str] = None
    featured: bool = False
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls(**_pick(cls, data))


@dataclass
class Sauce:
    id: str
    name: str
    price: Optional[float] = None  # surcharge; None means free
    spice: Optional[int] = None    # 0-5
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls(**_pick(cls, data))


# ============================================================================
# ORDER SNAPSHOTS
# ============================================================================

@dataclass(frozen=True)
class ProductSnapshot:
    """Product as it was when added to a cart or order."""
    id: str
    name: str
    price: float
    description: Optional[str] = None
    image: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            price=product.price,
            description=product.description,
            image=product.image,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductSnapshot":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            price=float(data.get("price") or 0),
            description=data.get("description"),
            image=data.get("image"),
        )


@dataclass(frozen=True)
class SauceSnapshot:
    id: str
    name: str
    price: Optional[float] = None
    spice: Optional[int] = None

    @property
    def surcharge(self) -> float:
        return self.price or 0.0

    @classmethod
    def from_sauce(cls, sauce: Sauce) -> "SauceSnapshot":
        return cls(id=sauce.id, name=sauce.name, price=sauce.price, spice=sauce.spice)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SauceSnapshot":
        price = data.get("price")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            price=float(price) if price is not None else None,
            spice=data.get("spice"),
        )


@dataclass(frozen=True)
class OrderLine:
    """
    Immutable order line.

    line_total is fixed at creation; see pricing.line_total.
    """
    product: ProductSnapshot
    quantity: int
    sauces: Tuple[SauceSnapshot, ...] = ()
    notes: str = ""
    line_total: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": asdict(self.product),
            "quantity": self.quantity,
            "sauces": [asdict(s) for s in self.sauces],
            "notes": self.notes,
            "line_total": self.line_total,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderLine":
        return cls(
            product=ProductSnapshot.from_dict(data["product"]),
            quantity=int(data["quantity"]),
            sauces=tuple(SauceSnapshot.from_dict(s) for s in data.get("sauces") or []),
            notes=data.get("notes") or "",
            line_total=float(data.get("line_total") or 0),
        )


@dataclass
class Order:
    id: str
    number: int
    customer_name: str
    customer_phone: str
    address: str
    items: List[OrderLine]
    subtotal: float
    tip: float
    total: float
    status: OrderStatus = OrderStatus.PENDING
    delivery_type: DeliveryType = DeliveryType.HOME_DELIVERY
    notes: str = ""
    created_at: str = ""
    created_at_display: str = ""
    updated_at: Optional[str] = None
    status_history: List[Dict[str, str]] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "address": self.address,
            "items": [line.to_dict() for line in self.items],
            "subtotal": self.subtotal,
            "tip": self.tip,
            "total": self.total,
            "status": self.status.value,
            "delivery_type": self.delivery_type.value,
            "notes": self.notes,
            "created_at": self.created_at,
            "created_at_display": self.created_at_display,
            "updated_at": self.updated_at,
            "status_history": [dict(entry) for entry in self.status_history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            number=int(data.get("number") or 0),
            customer_name=data["customer_name"],
            customer_phone=data["customer_phone"],
            address=data["address"],
            items=[OrderLine.from_dict(line) for line in data.get("items") or []],
            subtotal=float(data.get("subtotal") or 0),
            tip=float(data.get("tip") or 0),
            total=float(data.get("total") or 0),
            status=OrderStatus(data.get("status", OrderStatus.PENDING.value)),
            delivery_type=DeliveryType(
                data.get("delivery_type", DeliveryType.HOME_DELIVERY.value)
            ),
            notes=data.get("notes") or "",
            created_at=data.get("created_at", ""),
            created_at_display=data.get("created_at_display", ""),
            updated_at=data.get("updated_at"),
            status_history=list(data.get("status_history") or []),
        )


# ============================================================================
# CLIENT
# ============================================================================

@dataclass
class Client:
    id: str
    name: str
    phone: str
    address: str
    email: Optional[str] = None
    total_spent: float = 0.0
    order_count: int = 0
    last_order_at: Optional[str] = None
    registered_at: Optional[str] = None
    status: ClientStatus = ClientStatus.ACTIVE
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Client":
        return cls(
            id=data["id"],
            name=data["name"],
            phone=data["phone"],
            address=data.get("address") or "",
            email=data.get("email") or None,
            total_spent=float(data.get("total_spent") or 0),
            order_count=int(data.get("order_count") or 0),
            last_order_at=data.get("last_order_at"),
            registered_at=data.get("registered_at"),
            status=ClientStatus(data.get("status", ClientStatus.ACTIVE.value)),
            notes=data.get("notes") or "",
        )
