"""
Checkout service: turns a cart into a persisted order bound to a payment gateway order.

Pipeline (single pass, no retries):
1. Validate stock (read-only)            -> stock_conflict
2. Validate phone, pincode, address      -> invalid_request
3. Resolve customer (verified / logged in / guest)
4. Price the cart (caller prices are authoritative, shipping is free)
5. Create the gateway order              -> dependency_failed, nothing persisted
6. Insert the order with the gateway id, then its line items
7. Return what the payment widget needs

The gateway order is always created before the local order, so every stored
order carries a gateway reference from its first write. If the local insert
fails afterwards the gateway order is left to expire unused.
"""
import logging
import random
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Tuple

from storefront.config import Config
from storefront.exceptions import (
    AmountTooSmallError,
    PaymentGatewayError,
    StockConflictError,
    StoreError,
    ValidationError,
)
from storefront.models import (
    AddressSnapshot,
    AuthSession,
    CartLineItem,
    CheckoutOutcome,
    CheckoutRequest,
    CheckoutResponse,
    CheckoutResult,
    CheckoutSource,
    CustomerSnapshot,
    OrderItemSnapshot,
    OrderLineItem,
    OrderMetadata,
    OrderRecord,
    ShippingInfo,
    StockIssue,
    StockIssueReason,
    Variant,
)
from storefront.payment_gateway import PaymentGateway
from storefront.store import CheckoutStore
from storefront.validation import normalize_phone, normalize_pincode, require_address_line

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def generate_order_number(prefix: str = Config.ORDER_NUMBER_PREFIX, now: Optional[datetime] = None) -> str:
    """Human readable order number, e.g. ZYN-20261019-0042"""
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{now:%Y%m%d}-{random.randint(0, 9999):04d}"


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to paise/cents, rounding half up"""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def requested_quantities(items: List[CartLineItem]) -> "OrderedDict[str, int]":
    """Total requested quantity per distinct SKU, in first-seen order"""
    totals: "OrderedDict[str, int]" = OrderedDict()
    for item in items:
        totals[item.sku] = totals.get(item.sku, 0) + item.quantity
    return totals


def find_stock_issues(items: List[CartLineItem], variants: List[Variant]) -> List[StockIssue]:
    """
    Compare the cart against fetched variants.

    Missing SKUs are reported on their own (with zero availability); only
    when every SKU exists are quantities compared against stock.
    """
    requested = requested_quantities(items)
    by_sku: Dict[str, Variant] = {variant.sku: variant for variant in variants}

    missing = [sku for sku in requested if sku not in by_sku]
    if missing:
        return [
            StockIssue(
                sku=sku,
                requested_quantity=requested[sku],
                available_quantity=0,
                reason=StockIssueReason.VARIANT_NOT_FOUND,
            )
            for sku in missing
        ]

    issues: List[StockIssue] = []
    for sku, quantity in requested.items():
        available = by_sku[sku].stock or 0
        if quantity > available:
            issues.append(StockIssue(
                sku=sku,
                requested_quantity=quantity,
                available_quantity=available,
                reason=StockIssueReason.INSUFFICIENT_STOCK,
            ))
    return issues


class CheckoutService:
    """Service for checkout order creation"""

    def __init__(
        self,
        store: CheckoutStore,
        gateway: PaymentGateway,
        config=Config,
        order_number_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.gateway = gateway
        self.config = config
        self.order_number_factory = order_number_factory or (
            lambda: generate_order_number(self.config.ORDER_NUMBER_PREFIX)
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def create_order(self, request: CheckoutRequest, session: Optional[AuthSession] = None) -> CheckoutResult:
        """
        Run the checkout pipeline for one request.

        Returns:
            CheckoutResult whose outcome tells the caller what happened;
            only SUCCESS means an order row exists.
        """
        try:
            return self._create_order(request, session)
        except StockConflictError as e:
            return CheckoutResult(
                outcome=CheckoutOutcome.STOCK_CONFLICT,
                error="Stock validation failed",
                invalid_items=e.issues,
            )
        except ValidationError as e:
            return CheckoutResult(outcome=CheckoutOutcome.INVALID_REQUEST, error=e.message, field=e.field)
        except PaymentGatewayError:
            # Nothing has been written locally
            return CheckoutResult(
                outcome=CheckoutOutcome.DEPENDENCY_FAILED,
                error="Payment gateway initialization failed",
            )

    def validate_stock(self, items: List[CartLineItem]) -> List[Variant]:
        """
        Check every requested SKU against inventory without reserving anything.

        Raises:
            StockConflictError: With one issue per failing SKU
        """
        variants = self.store.fetch_variants(requested_quantities(items).keys())
        issues = find_stock_issues(items, variants)
        if issues:
            raise StockConflictError(issues)
        return variants

    def _create_order(self, request: CheckoutRequest, session: Optional[AuthSession]) -> CheckoutResult:
        order_number = self.order_number_factory()
        log_prefix = f"[Order: {order_number}]"
        logger.info(f"{log_prefix} Order creation started ({len(request.items)} cart lines)")

        # --- 1. Stock (read-only) ---
        try:
            variants = self.validate_stock(request.items)
        except StockConflictError as e:
            logger.warning(f"{log_prefix} Stock validation failed: {[issue.model_dump() for issue in e.issues]}")
            raise
        except StoreError as e:
            logger.error(f"{log_prefix} Stock lookup failed: {e}")
            return CheckoutResult(outcome=CheckoutOutcome.DEPENDENCY_FAILED, error="Failed to validate stock")
        logger.info(f"{log_prefix} Stock validated")

        # --- 2. Fields ---
        phone = normalize_phone(request.customer.phone, self.config.PHONE_COUNTRY_CODE)
        pincode = normalize_pincode(request.address.pincode)
        line1 = require_address_line(request.address.line1)

        # --- 3. Customer ---
        try:
            customer_id, source = self.resolve_customer(request, session, phone)
        except StoreError as e:
            logger.error(f"{log_prefix} Customer lookup failed: {e}")
            return CheckoutResult(outcome=CheckoutOutcome.DEPENDENCY_FAILED, error="Failed to resolve customer")

        # --- 4. Pricing ---
        cost_by_sku = {variant.sku: variant.cost or ZERO for variant in variants}
        items_snapshot = [
            OrderItemSnapshot(
                sku=item.sku,
                product_uid=item.product_uid,
                product_name=item.name,
                size=item.size,
                quantity=item.quantity,
                selling_price=item.price,
                cost_price=cost_by_sku.get(item.sku, ZERO),
                subtotal=item.price * item.quantity,
            )
            for item in request.items
        ]
        subtotal = sum((snapshot.subtotal for snapshot in items_snapshot), ZERO)
        shipping_fee = ZERO
        internal_shipping_cost = ZERO
        total_payable = subtotal + shipping_fee

        # --- 5. Gateway order first ---
        amount_minor = to_minor_units(total_payable)
        if amount_minor < self.config.MIN_CHARGE_MINOR_UNITS:
            logger.error(f"{log_prefix} Amount too small for payment: {amount_minor} minor units")
            raise AmountTooSmallError(amount_minor, self.config.MIN_CHARGE_MINOR_UNITS)

        logger.info(f"{log_prefix} Creating {self.gateway.name} order (amount: {total_payable} {self.config.CURRENCY})")
        gateway_order = self.gateway.create_order(
            amount_minor=amount_minor,
            currency=self.config.CURRENCY,
            receipt=order_number,
            notes={
                "order_number": order_number,
                "customer_name": request.customer.name,
                "customer_phone": phone,
            },
        )
        if not gateway_order.id:
            raise PaymentGatewayError("Invalid payment gateway response - missing order id")
        logger.info(f"{log_prefix} {self.gateway.name} order created: {gateway_order.id}")

        # --- 6. Local order, carrying the gateway id from the first write ---
        now = self.clock()
        email = request.customer.email
        address = request.address
        order = OrderRecord(
            id=str(uuid.uuid4()),
            order_number=order_number,
            payment_provider=self.gateway.name,
            payment_order_id=gateway_order.id,
            customer_id=customer_id,
            guest_phone=None if customer_id else phone,
            guest_email=None if customer_id else email,
            currency=self.config.CURRENCY,
            subtotal=subtotal,
            shipping_fee=shipping_fee,
            internal_shipping_cost=internal_shipping_cost,
            assumed_weight=self.config.DEFAULT_SHIPMENT_WEIGHT,
            total_amount=total_payable,
            shipping_name=request.customer.name,
            shipping_phone=phone,
            shipping_email=email,
            shipping_address1=line1,
            shipping_address2=address.line2 or None,
            shipping_city=address.city,
            shipping_state=address.state,
            shipping_pincode=pincode,
            shipping_country=address.country or self.config.DEFAULT_COUNTRY,
            metadata=OrderMetadata(
                customer_snapshot=CustomerSnapshot(
                    name=request.customer.name,
                    phone=phone,
                    email=email,
                    address=AddressSnapshot(
                        line1=address.line1,
                        line2=address.line2 or None,
                        city=address.city,
                        state=address.state,
                        pincode=address.pincode,
                        country=address.country,
                    ),
                    snapshot_taken_at=now,
                ),
                items_snapshot=items_snapshot,
                shipping=ShippingInfo(cost_calculated=internal_shipping_cost),
                checkout_source=source,
                guest_session_id=request.guest_session_id,
            ),
            created_at=now,
            updated_at=now,
        )

        try:
            self.store.insert_order(order)
        except StoreError as e:
            # Gateway order stays orphaned and expires unused
            logger.error(f"{log_prefix} DB order creation failed (orphaned {self.gateway.name} order {gateway_order.id}): {e}")
            return CheckoutResult(outcome=CheckoutOutcome.DEPENDENCY_FAILED, error="Failed to create order")
        logger.info(f"{log_prefix} Order persisted with {self.gateway.name} id")

        line_items = [
            OrderLineItem(
                order_id=order.id,
                product_uid=snapshot.product_uid,
                sku=snapshot.sku,
                name=snapshot.product_name,
                quantity=snapshot.quantity,
                price=snapshot.selling_price,
                cost_price=snapshot.cost_price,
                subtotal=snapshot.subtotal,
            )
            for snapshot in items_snapshot
        ]
        try:
            self.store.insert_order_items(order.id, line_items)
        except StoreError as e:
            logger.error(f"{log_prefix} Order items creation failed (non-fatal): {e}")

        logger.info(
            f"{log_prefix} Order creation complete",
            extra={
                "order_id": order.id,
                "payment_order_id": gateway_order.id,
                "customer_type": "verified" if customer_id else "guest",
                "total_payable": str(total_payable),
            }
        )

        # --- 7. Response ---
        return CheckoutResult(
            outcome=CheckoutOutcome.SUCCESS,
            order=CheckoutResponse(
                order_id=order.id,
                order_number=order.order_number,
                subtotal=subtotal,
                shipping_fee=shipping_fee,
                total_payable=total_payable,
                payment_gateway=self.gateway.name,
                razorpay_order_id=gateway_order.id,
                razorpay_key_id=self.gateway.public_key_id,
                created_at=now,
            ),
        )

    def resolve_customer(
        self,
        request: CheckoutRequest,
        session: Optional[AuthSession],
        phone: str
    ) -> Tuple[Optional[str], CheckoutSource]:
        """
        Pick the customer the order belongs to.

        Priority: verified customer_id, then the logged-in user's customer
        (created on first checkout), then guest.
        """
        if request.customer_id:
            customer = self.store.get_customer(str(request.customer_id))
            if customer:
                return customer.id, CheckoutSource.OTP_VERIFIED
            logger.warning(f"Supplied customer {request.customer_id} not found, falling back")

        if session:
            customer = self.store.find_customer_by_auth_uid(session.user_id)
            if customer:
                return customer.id, CheckoutSource.LOGGED_IN

            name_parts = request.customer.name.split(" ")
            try:
                customer = self.store.create_customer(
                    auth_uid=session.user_id,
                    email=request.customer.email or session.email or "",
                    first_name=name_parts[0],
                    last_name=" ".join(name_parts[1:]),
                    phone=phone,
                )
                return customer.id, CheckoutSource.LOGGED_IN
            except StoreError as e:
                logger.warning(f"Could not create customer for auth user {session.user_id}, checking out as guest: {e}")

        return None, request.checkout_source or CheckoutSource.DIRECT
