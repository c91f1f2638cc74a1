"""
Request Schemas
===============
Pydantic models for every request body the API accepts.

Presence of contact fields is checked by the services so the error
message is the same whether the order comes from the API or elsewhere;
these models only enforce shape and ranges.
"""

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field


OrderStatusValue = Literal["pending", "preparing", "ready", "delivered", "cancelled"]
DeliveryTypeValue = Literal["home-delivery", "pickup"]
ClientStatusValue = Literal["active", "inactive"]


# ============================================================================
# ORDERS
# ============================================================================

class LineIn(BaseModel):
    product_id: str = Field(..., description="Catalog product id")
    quantity: int = Field(1, ge=1)
    sauce_ids: List[str] = Field(default_factory=list)
    notes: str = ""


class CheckoutIn(BaseModel):
    """Storefront checkout and admin order entry."""
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    delivery_type: Optional[DeliveryTypeValue] = None
    notes: str = ""
    items: List[LineIn] = Field(default_factory=list)


class OrderUpdateIn(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    address: Optional[str] = None
    delivery_type: Optional[DeliveryTypeValue] = None
    notes: Optional[str] = None
    items: Optional[List[LineIn]] = None


class StatusIn(BaseModel):
    status: OrderStatusValue


class CancelIn(BaseModel):
    reason: Optional[str] = None


# ============================================================================
# CLIENTS
# ============================================================================

class ClientIn(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    status: ClientStatusValue = "active"
    notes: str = ""


# ============================================================================
# CATALOG
# ============================================================================

class CategoryIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class CategoryPatch(CategoryIn):
    pass


class ProductIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Any = None  # coerced to float by the catalog
    image: Optional[str] = None
    category_id: Optional[str] = None
    featured: bool = False


class ProductPatch(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Any = None
    image: Optional[str] = None
    category_id: Optional[str] = None
    featured: Optional[bool] = None


class SauceIn(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    spice: Optional[int] = Field(None, ge=0, le=5)


class SaucePatch(SauceIn):
    pass


# ============================================================================
# AUTH
# ============================================================================

class AuthIn(BaseModel):
    email: str
    password: str
