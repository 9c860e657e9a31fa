"""
FastAPI application for storefront checkout.
"""
import time
import logging
import threading
from typing import Optional
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.config import Config
from storefront.models import (
    AuthSession,
    CheckoutOutcome,
    CheckoutRequest,
    OrderSummary,
)
from storefront.checkout_service import CheckoutService
from storefront.exceptions import PaymentGatewayError, StoreError, StoreUnavailableError
from storefront.middleware import RequestLoggingMiddleware
from storefront.payment_gateway import PaymentGateway, RazorpayGateway, UnconfiguredGateway
from storefront.redis_client import get_redis_client
from storefront.store import CheckoutStore, RedisCheckoutStore

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Storefront Checkout API",
    description="Checkout order creation backed by Redis and Razorpay",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

STATUS_BY_OUTCOME = {
    CheckoutOutcome.SUCCESS: 200,
    CheckoutOutcome.INVALID_REQUEST: 400,
    CheckoutOutcome.STOCK_CONFLICT: 409,
    CheckoutOutcome.DEPENDENCY_FAILED: 500,
}

# Built once at startup; tests replace them via dependency_overrides
_store: Optional[CheckoutStore] = None
_gateway: Optional[PaymentGateway] = None
_init_lock = threading.Lock()


def build_payment_gateway(config=Config) -> PaymentGateway:
    """
    Razorpay client from config.

    Missing credentials do not stop the app: checkouts still get stock and
    field validation, then fail at the payment step.
    """
    try:
        return RazorpayGateway.from_config(config)
    except PaymentGatewayError as e:
        logger.error(f"Payment gateway not configured: {e}")
        return UnconfiguredGateway(e.message)


def get_store() -> CheckoutStore:
    """Shared store; retried here if Redis was unreachable at startup"""
    global _store
    if _store is None:
        with _init_lock:
            if _store is None:
                _store = RedisCheckoutStore(get_redis_client())
    return _store


def get_payment_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        with _init_lock:
            if _gateway is None:
                _gateway = build_payment_gateway(Config)
    return _gateway


def get_checkout_service(
    store: CheckoutStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> CheckoutService:
    return CheckoutService(store=store, gateway=gateway, config=Config)


def get_auth_session(
    user_id: Optional[str] = Header(None, alias="X-User-ID", description="Authenticated user id"),
    user_email: Optional[str] = Header(None, alias="X-User-Email", description="Authenticated user email")
) -> Optional[AuthSession]:
    """Session asserted by the upstream auth layer; None for anonymous shoppers"""
    if not user_id or not user_id.strip():
        return None
    return AuthSession(user_id=user_id.strip(), email=user_email)


@app.on_event("startup")
def on_startup():
    """Build the payment client and the store connection before serving"""
    logger.info("Checkout API starting...")
    get_payment_gateway()
    try:
        get_store()
    except StoreError as e:
        logger.warning(f"Store unavailable at startup, retrying on first request: {e}")


@app.on_event("shutdown")
def on_shutdown():
    """Close the HTTP client and the Redis pool"""
    global _store, _gateway
    with _init_lock:
        if _gateway is not None:
            _gateway.close()
            _gateway = None
        if _store is not None:
            _store.close()
            _store = None
    logger.info("Checkout API stopped")


# Health check endpoint for ALB
@app.get("/health")
def health_check():
    """
    Health check endpoint for ALB.
    Always returns HTTP 200 if the application is running.
    Checks store connectivity but does not fail if it is unavailable.
    """
    store_status = "healthy"
    store_latency_ms = None

    try:
        store = get_store()
        ping_start = time.time()
        if not store.ping():
            store_status = "unhealthy"
        store_latency_ms = round((time.time() - ping_start) * 1000, 2)
    except StoreError as e:
        logger.warning(f"Health check could not reach store: {e}")
        store_status = "unhealthy"

    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": "checkout-api",
            "store": {
                "status": store_status,
                "latency_ms": store_latency_ms
            },
            "timestamp": time.time()
        }
    )


@app.post("/api/checkout/create-order")
def create_checkout_order(
    payload: CheckoutRequest,
    request: Request,
    service: CheckoutService = Depends(get_checkout_service),
    session: Optional[AuthSession] = Depends(get_auth_session)
):
    """
    Create an order for the submitted cart.

    Stock is validated first (409 with per-SKU detail), then contact and
    address fields (400). The payment gateway order is created before the
    local order; a gateway failure returns 500 with nothing persisted.
    """
    result = service.create_order(payload, session)
    request.state.checkout_outcome = result.outcome.value

    if result.ok:
        return JSONResponse(status_code=200, content=result.order.model_dump(mode="json"))

    content = {"success": False, "error": result.error}
    if result.field:
        content["field"] = result.field
    if result.invalid_items:
        content["invalid_items"] = [issue.model_dump(mode="json") for issue in result.invalid_items]

    return JSONResponse(status_code=STATUS_BY_OUTCOME[result.outcome], content=content)


@app.get("/api/orders/by-number")
def get_order_by_number(
    order_number: Optional[str] = Query(None, description="Order number shown to the customer"),
    store: CheckoutStore = Depends(get_store)
):
    """Order details for the confirmation page (guest and logged-in orders)"""
    if not order_number or not order_number.strip():
        return JSONResponse(status_code=400, content={"success": False, "error": "order_number is required"})

    order = store.get_order_by_number(order_number.strip())
    if not order:
        return JSONResponse(status_code=404, content={"success": False, "error": "Order not found"})

    return JSONResponse(status_code=200, content=OrderSummary.from_record(order).model_dump(mode="json"))


# Error handlers
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc):
    details = [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation failed", "details": details}
    )


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request, exc):
    return JSONResponse(
        status_code=503,
        content={"success": False, "error": "Service unavailable", "message": "Redis connection failed"}
    )


# Generic exception handler for unhandled errors
@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "details": str(exc)
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
