"""
HTTP Server
===========
FastAPI application for the storefront and the back office.

Envelope:
    {"success": true, "data": ...}            200 / 201
    {"success": false, "error": "message"}    400 / 401 / 404 / 500

NO BUSINESS LOGIC - routes translate HTTP to service calls only.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import uvicorn

from cache import LocalSnapshotStore, Listing
from catalog import CatalogService
from clients import ClientLedger
from config import Config, get_config, validate_configuration
from db import Database, create_database
from errors import AuthenticationError, OrderingError
from handlers import OrderService
from schemas import (
    AuthIn,
    CancelIn,
    CategoryIn,
    CategoryPatch,
    CheckoutIn,
    ClientIn,
    OrderUpdateIn,
    ProductIn,
    ProductPatch,
    SauceIn,
    SaucePatch,
    StatusIn,
)


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


AUTH_COOKIE = "authToken"


# ============================================================================
# ENVELOPE
# ============================================================================

def ok(data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"success": True, "data": data}, status_code=status_code)


def listing(result: Listing) -> JSONResponse:
    return JSONResponse({
        "success": True,
        "data": [item.to_dict() for item in result.items],
        "degraded": result.degraded,
    })


def fail(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


async def ordering_error_handler(request: Request, exc: OrderingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return fail(exc.message, exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())[1:])
        problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return fail("; ".join(problems) or "Invalid request", 400)


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return fail("Internal server error", 500)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_orders(request: Request) -> OrderService:
    return request.app.state.orders


def get_ledger(request: Request) -> ClientLedger:
    return request.app.state.ledger


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def require_admin(request: Request):
    """Bearer header or authToken cookie; open when no ADMIN_TOKEN is set."""
    admin = request.app.state.config.admin
    if not admin.auth_enabled:
        return

    header = request.headers.get("Authorization", "")
    token = header[len("Bearer "):] if header.startswith("Bearer ") else request.cookies.get(AUTH_COOKIE)

    if not token or not secrets.compare_digest(token, admin.token):
        raise AuthenticationError("Admin authentication required")


admin_only = [Depends(require_admin)]


# ============================================================================
# STOREFRONT ROUTES
# ============================================================================

router = APIRouter(prefix="/api")


@router.get("/menu")
async def menu(catalog: CatalogService = Depends(get_catalog)):
    return ok(await catalog.get_menu())


@router.post("/orders")
async def checkout(body: CheckoutIn, orders: OrderService = Depends(get_orders)):
    order = await orders.place_order(body.model_dump())
    return ok(order.to_dict(), 201)


@router.post("/auth")
async def login(body: AuthIn, request: Request):
    admin = request.app.state.config.admin

    if not admin.auth_enabled or not admin.email or not admin.password:
        raise AuthenticationError("Admin login is not configured")

    email_ok = secrets.compare_digest(body.email.strip().lower(), admin.email.lower())
    password_ok = secrets.compare_digest(body.password, admin.password)
    if not (email_ok and password_ok):
        logger.warning("Failed admin login attempt")
        raise AuthenticationError("Invalid credentials")

    response = ok({"token": admin.token})
    response.set_cookie(AUTH_COOKIE, admin.token, httponly=True, samesite="lax")
    return response


# ============================================================================
# ORDER ROUTES (BACK OFFICE)
# ============================================================================

@router.get("/orders", dependencies=admin_only)
async def list_orders(status: Optional[str] = None, orders: OrderService = Depends(get_orders)):
    return listing(await orders.list_orders(status))


@router.post("/admin/orders", dependencies=admin_only)
async def create_admin_order(body: CheckoutIn, orders: OrderService = Depends(get_orders)):
    order = await orders.create_admin_order(body.model_dump())
    return ok(order.to_dict(), 201)


# Registered before /orders/{order_id} so "completed" is not taken as an id
@router.delete("/orders/completed", dependencies=admin_only)
async def delete_completed(orders: OrderService = Depends(get_orders)):
    result = await orders.delete_completed()
    return ok(result.to_dict())


@router.get("/orders/{order_id}", dependencies=admin_only)
async def get_order(order_id: str, orders: OrderService = Depends(get_orders)):
    return ok((await orders.get_order(order_id)).to_dict())


@router.put("/orders/{order_id}", dependencies=admin_only)
async def update_order(order_id: str, body: OrderUpdateIn, orders: OrderService = Depends(get_orders)):
    order = await orders.update_order(order_id, body.model_dump(exclude_unset=True))
    return ok(order.to_dict())


@router.delete("/orders/{order_id}", dependencies=admin_only)
async def delete_order(order_id: str, orders: OrderService = Depends(get_orders)):
    await orders.delete_order(order_id)
    return ok({"id": order_id})


@router.post("/orders/{order_id}/advance", dependencies=admin_only)
async def advance_order(order_id: str, orders: OrderService = Depends(get_orders)):
    return ok((await orders.advance(order_id)).to_dict())


@router.post("/orders/{order_id}/cancel", dependencies=admin_only)
async def cancel_order(
    order_id: str,
    body: Optional[CancelIn] = None,
    orders: OrderService = Depends(get_orders)
):
    reason = body.reason if body else None
    return ok((await orders.cancel(order_id, reason)).to_dict())


@router.patch("/orders/{order_id}/status", dependencies=admin_only)
async def set_order_status(order_id: str, body: StatusIn, orders: OrderService = Depends(get_orders)):
    return ok((await orders.set_status(order_id, body.status)).to_dict())


# ============================================================================
# CLIENT ROUTES
# ============================================================================

@router.get("/clients", dependencies=admin_only)
async def list_clients(ledger: ClientLedger = Depends(get_ledger)):
    return listing(await ledger.list_clients())


@router.post("/clients", dependencies=admin_only)
async def create_client(body: ClientIn, ledger: ClientLedger = Depends(get_ledger)):
    client = await ledger.create_client(body.model_dump())
    return ok(client.to_dict(), 201)


@router.get("/clients/{client_id}", dependencies=admin_only)
async def get_client(client_id: str, ledger: ClientLedger = Depends(get_ledger)):
    return ok((await ledger.get_client(client_id)).to_dict())


@router.put("/clients/{client_id}", dependencies=admin_only)
async def update_client(client_id: str, body: ClientIn, ledger: ClientLedger = Depends(get_ledger)):
    return ok((await ledger.update_client(client_id, body.model_dump())).to_dict())


@router.delete("/clients/{client_id}", dependencies=admin_only)
async def delete_client(client_id: str, ledger: ClientLedger = Depends(get_ledger)):
    await ledger.delete_client(client_id)
    return ok({"id": client_id})


# ============================================================================
# CATALOG ROUTES
# ============================================================================

@router.get("/categories")
async def list_categories(catalog: CatalogService = Depends(get_catalog)):
    return ok([c.to_dict() for c in await catalog.list_categories()])


@router.post("/categories", dependencies=admin_only)
async def create_category(body: CategoryIn, catalog: CatalogService = Depends(get_catalog)):
    return ok((await catalog.create_category(body.model_dump())).to_dict(), 201)


@router.put("/categories/{category_id}", dependencies=admin_only)
async def update_category(category_id: str, body: CategoryIn, catalog: CatalogService = Depends(get_catalog)):
    return ok((await catalog.update_category(category_id, body.model_dump())).to_dict())


@router.patch("/categories/{category_id}", dependencies=admin_only)
async def patch_category(category_id: str, body: CategoryPatch, catalog: CatalogService = Depends(get_catalog)):
    category = await catalog.patch_category(category_id, body.model_dump(exclude_unset=True))
    return ok(category.to_dict())


@router.delete("/categories/{category_id}", dependencies=admin_only)
async def delete_category(category_id: str, catalog: CatalogService = Depends(get_catalog)):
    await catalog.delete_category(category_id)
    return ok({"id": category_id})


@router.get("/products")
async def list_products(category_id: Optional[str] = None, catalog: CatalogService = Depends(get_catalog)):
    return ok([p.to_dict() for p in await catalog.list_products(category_id)])


@router.post("/products", dependencies=admin_only)
async def create_product(body: ProductIn, catalog: CatalogService = Depends(get_catalog)):
    return ok((await catalog.create_product(body.model_dump())).to_dict(), 201)


@router.get("/products/{product_id}")
async def get_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    return ok((await catalog.get_product(product_id)).to_dict())


@router.put("/products/{product_id}", dependencies=admin_only)
async def update_product(product_id: str, body: ProductIn, catalog: CatalogService = Depends(get_catalog)):
    return ok((await catalog.update_product(product_id, body.model_dump())).to_dict())


@router.patch("/products/{product_id}", dependencies=admin_only)
async def patch_product(product_id: str, body: ProductPatch, catalog: CatalogService = Depends(get_catalog)):
    product = await catalog.patch_product(product_id, body.model_dump(exclude_unset=True))
    return ok(product.to_dict())


@router.delete("/products/{product_id}", dependencies=admin_only)
async def delete_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    await catalog.delete_product(product_id)
    return ok({"id": product_id})


@router.get("/sauces")
async def list_sauces(catalog: CatalogService = Depends(get_catalog)):
    return ok([s.to_dict() for s in await catalog.list_sauces()])


@router.post("/sauces", dependencies=admin_only)
async def create_sauce(body: SauceIn, catalog: CatalogService = Depends(get_catalog)):
    return ok((await catalog.create_sauce(body.model_dump())).to_dict(), 201)


@router.put("/sauces/{sauce_id}", dependencies=admin_only)
async def update_sauce(sauce_id: str, body: SauceIn, catalog: CatalogService = Depends(get_catalog)):
    return ok((await catalog.update_sauce(sauce_id, body.model_dump())).to_dict())


@router.patch("/sauces/{sauce_id}", dependencies=admin_only)
async def patch_sauce(sauce_id: str, body: SaucePatch, catalog: CatalogService = Depends(get_catalog)):
    sauce = await catalog.patch_sauce(sauce_id, body.model_dump(exclude_unset=True))
    return ok(sauce.to_dict())


@router.delete("/sauces/{sauce_id}", dependencies=admin_only)
async def delete_sauce(sauce_id: str, catalog: CatalogService = Depends(get_catalog)):
    await catalog.delete_sauce(sauce_id)
    return ok({"id": sauce_id})


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

def create_app(config: Optional[Config] = None, db: Optional[Database] = None) -> FastAPI:
    """
    Build the application with its services.

    Args:
        config: Defaults to the global configuration
        db: Defaults to the configured backend
    """
    config = config or get_config()
    db = db or create_database(config)

    cache = LocalSnapshotStore(config.cache.directory, enabled=config.cache.enabled)
    ledger = ClientLedger(db, cache)

    app = FastAPI(title="Tarascos Ordering API")
    app.state.config = config
    app.state.db = db
    app.state.cache = cache
    app.state.ledger = ledger
    app.state.catalog = CatalogService(db)
    app.state.orders = OrderService(
        db, ledger, cache,
        tip_rate=config.pricing.tip_rate,
        display_tz=config.locale.timezone,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(OrderingError, ordering_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "storage_backend": db.backend,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(router)

    logger.info(f"Application created (storage: {db.backend})")
    return app


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main():
    """Run the API server."""
    validate_configuration()
    config = get_config()

    logging.getLogger().setLevel(config.server.log_level)
    logger.info(f"Starting server on {config.server.host}:{config.server.port}")

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
