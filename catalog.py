"""
Catalog Module
==============
Products, categories and sauces for the storefront menu and back office.

Rules:
- Every entity needs a non-blank name; products also need a description
- Product prices are coerced to float (0 when missing or unparsable)
- A product's category must exist
- A category cannot be deleted while any product references it
- Sauce surcharge >= 0 (or none), spice level 0-5 (or none)
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional

from db import Database
from errors import NotFoundError, ValidationError
from models import Category, Product, Sauce


logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

DEFAULT_CATEGORY_COLOR = "#FF0000"
DEFAULT_CATEGORY_ICON = "default-icon"
MAX_NAME_LENGTH = 200
MIN_SPICE = 0
MAX_SPICE = 5


def _require_text(data: Dict[str, Any], key: str, label: str) -> str:
    value = data.get(key)
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required", reason=f"missing_{key}")
    value = str(value).strip()
    if len(value) > MAX_NAME_LENGTH and key == "name":
        raise ValidationError(f"{label} is too long (max {MAX_NAME_LENGTH})", reason="name_length")
    return value


def _coerce_price(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CatalogService:
    """Back-office CRUD and the storefront menu view."""

    def __init__(self, db: Database):
        self.db = db

    # ========================================================================
    # CATEGORIES
    # ========================================================================

    async def list_categories(self) -> List[Category]:
        rows = await self.db.categories.list(order_by="created_at", descending=True)
        return [Category.from_dict(r) for r in rows]

    async def get_category(self, category_id: str) -> Category:
        row = await self.db.categories.get(category_id)
        if row is None:
            raise NotFoundError("Category", category_id)
        return Category.from_dict(row)

    def _category_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": _require_text(data, "name", "Name"),
            "description": data.get("description") or "",
            "color": data.get("color") or DEFAULT_CATEGORY_COLOR,
            "icon": data.get("icon") or DEFAULT_CATEGORY_ICON,
        }

    async def create_category(self, data: Dict[str, Any]) -> Category:
        category = Category(id=uuid.uuid4().hex, created_at=_now(), **self._category_fields(data))
        await self.db.categories.insert(category.to_dict())
        logger.info(f"Category created: {category.name} ({category.id})")
        return category

    async def update_category(self, category_id: str, data: Dict[str, Any]) -> Category:
        """Full replace (PUT): omitted optional fields fall back to defaults."""
        await self.get_category(category_id)
        row = await self.db.categories.update(category_id, self._category_fields(data))
        return Category.from_dict(row)

    async def patch_category(self, category_id: str, data: Dict[str, Any]) -> Category:
        current = await self.get_category(category_id)
        merged = {**current.to_dict(), **data}
        row = await self.db.categories.update(category_id, self._category_fields(merged))
        return Category.from_dict(row)

    async def delete_category(self, category_id: str):
        """
        Delete a category.

        Raises:
            ValidationError: while products still reference it
            NotFoundError: unknown id
        """
        await self.get_category(category_id)

        in_use = await self.db.products.count(filters={"category_id": category_id})
        if in_use:
            logger.warning(f"Category {category_id} still has {in_use} products")
            raise ValidationError(
                f"Cannot delete category: {in_use} product(s) still use it",
                reason="category_in_use"
            )

        await self.db.categories.delete(category_id)
        logger.info(f"Category deleted: {category_id}")

    # ========================================================================
    # PRODUCTS
    # ========================================================================

    async def list_products(self, category_id: Optional[str] = None) -> List[Product]:
        filters = {"category_id": category_id} if category_id else None
        rows = await self.db.products.list(order_by="created_at", descending=True, filters=filters)
        return [Product.from_dict(r) for r in rows]

    async def get_product(self, product_id: str) -> Product:
        row = await self.db.products.get(product_id)
        if row is None:
            raise NotFoundError("Product", product_id)
        return Product.from_dict(row)

    async def _product_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        category_id = data.get("category_id")
        if category_id:
            if await self.db.categories.get(category_id) is None:
                raise ValidationError(f"Unknown category: {category_id}", reason="unknown_category")

        return {
            "name": _require_text(data, "name", "Name"),
            "description": _require_text(data, "description", "Description"),
            "price": _coerce_price(data.get("price")),
            "image": data.get("image") or None,
            "featured": bool(data.get("featured", False)),
            "category_id": category_id or None,
        }

    async def create_product(self, data: Dict[str, Any]) -> Product:
        product = Product(id=uuid.uuid4().hex, created_at=_now(), **(await self._product_fields(data)))
        await self.db.products.insert(product.to_dict())
        logger.info(f"Product created: {product.name} (${product.price:.2f})")
        return product

    async def update_product(self, product_id: str, data: Dict[str, Any]) -> Product:
        await self.get_product(product_id)
        row = await self.db.products.update(product_id, await self._product_fields(data))
        return Product.from_dict(row)

    async def patch_product(self, product_id: str, data: Dict[str, Any]) -> Product:
        current = await self.get_product(product_id)
        merged = {**current.to_dict(), **data}
        row = await self.db.products.update(product_id, await self._product_fields(merged))
        return Product.from_dict(row)

    async def delete_product(self, product_id: str):
        # Orders keep their own product snapshot
        await self.db.products.delete(product_id)
        logger.info(f"Product deleted: {product_id}")

    # ========================================================================
    # SAUCES
    # ========================================================================

    async def list_sauces(self) -> List[Sauce]:
        rows = await self.db.sauces.list(order_by="created_at", descending=True)
        return [Sauce.from_dict(r) for r in rows]

    async def get_sauce(self, sauce_id: str) -> Sauce:
        row = await self.db.sauces.get(sauce_id)
        if row is None:
            raise NotFoundError("Sauce", sauce_id)
        return Sauce.from_dict(row)

    def _sauce_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        price = data.get("price")
        if price is not None:
            price = _coerce_price(price)
            if price < 0:
                raise ValidationError("Sauce surcharge cannot be negative", reason="invalid_price")

        spice = data.get("spice")
        if spice is not None:
            try:
                spice = int(spice)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid spice level: {spice}", reason="invalid_spice")
            if not MIN_SPICE <= spice <= MAX_SPICE:
                raise ValidationError(
                    f"Spice level must be between {MIN_SPICE} and {MAX_SPICE}",
                    reason="invalid_spice"
                )

        return {
            "name": _require_text(data, "name", "Name"),
            "price": price,
            "spice": spice,
        }

    async def create_sauce(self, data: Dict[str, Any]) -> Sauce:
        sauce = Sauce(id=uuid.uuid4().hex, created_at=_now(), **self._sauce_fields(data))
        await self.db.sauces.insert(sauce.to_dict())
        logger.info(f"Sauce created: {sauce.name}")
        return sauce

    async def update_sauce(self, sauce_id: str, data: Dict[str, Any]) -> Sauce:
        await self.get_sauce(sauce_id)
        row = await self.db.sauces.update(sauce_id, self._sauce_fields(data))
        return Sauce.from_dict(row)

    async def patch_sauce(self, sauce_id: str, data: Dict[str, Any]) -> Sauce:
        current = await self.get_sauce(sauce_id)
        merged = {**current.to_dict(), **data}
        row = await self.db.sauces.update(sauce_id, self._sauce_fields(merged))
        return Sauce.from_dict(row)

    async def delete_sauce(self, sauce_id: str):
        await self.db.sauces.delete(sauce_id)
        logger.info(f"Sauce deleted: {sauce_id}")

    # ========================================================================
    # MENU
    # ========================================================================

    async def get_menu(self) -> Dict[str, Any]:
        """
        Storefront menu: categories with their products (featured first),
        uncategorised products, and the sauce list.
        """
        categories = await self.list_categories()
        products = await self.list_products()
        sauces = await self.list_sauces()

        by_category: Dict[Optional[str], List[Product]] = {}
        for product in products:
            by_category.setdefault(product.category_id, []).append(product)

        def ordered(items: List[Product]) -> List[Dict[str, Any]]:
            items = sorted(items, key=lambda p: (not p.featured, p.name.lower()))
            return [p.to_dict() for p in items]

        known = {c.id for c in categories}
        uncategorised = [
            p for cid, items in by_category.items() if cid not in known for p in items
        ]

        return {
            "categories": [
                {**c.to_dict(), "products": ordered(by_category.get(c.id, []))}
                for c in categories
            ],
            "uncategorised": ordered(uncategorised),
            "featured": [p.to_dict() for p in products if p.featured],
            "sauces": [s.to_dict() for s in sauces],
        }
