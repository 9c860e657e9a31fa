"""
Pydantic models for checkout requests, stored records, and results.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, PlainSerializer, field_validator

from storefront.config import Config

# Decimal internally, plain JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CheckoutSource(str, Enum):
    OTP_VERIFIED = "otp_verified"
    GUEST = "guest"
    DIRECT = "direct"
    LOGGED_IN = "logged_in"


class OrderStatus(str, Enum):
    CREATED = "created"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class ShippingStatus(str, Enum):
    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class StockIssueReason(str, Enum):
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    VARIANT_NOT_FOUND = "VARIANT_NOT_FOUND"


# --- Request models ---

class CartLineItem(BaseModel):
    """Cart line as shown to the customer"""
    sku: str = Field(..., min_length=1, description="Variant SKU")
    product_uid: str = Field(..., min_length=1, description="Parent product identifier")
    name: str = Field(..., min_length=1, description="Display name")
    size: str = Field(..., min_length=1, description="Size label")
    quantity: int = Field(..., ge=1, description="Requested quantity")
    price: Money = Field(..., ge=0, description="Selling price per unit")


class CustomerDetails(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    phone: str = Field(..., min_length=10, max_length=15, description="Mobile number")
    email: Optional[str] = Field(None, description="Contact email")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def blank_email_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class ShippingAddress(BaseModel):
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., description="6 digit postal code")
    country: str = Field(default_factory=lambda: Config.DEFAULT_COUNTRY)


class CheckoutRequest(BaseModel):
    """Request model for order creation"""
    customer: CustomerDetails
    address: ShippingAddress
    items: List[CartLineItem] = Field(..., min_length=1, description="Cart cannot be empty")
    customer_id: Optional[UUID] = Field(None, description="Customer from OTP-verified checkout")
    guest_session_id: Optional[str] = None
    checkout_source: Optional[CheckoutSource] = None


class AuthSession(BaseModel):
    """Authenticated storefront user, as asserted by the upstream auth layer"""
    user_id: str
    email: Optional[str] = None


# --- Store records ---

class Variant(BaseModel):
    id: str
    sku: str
    stock: Optional[int] = None
    price: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    product_uid: str


class Customer(BaseModel):
    id: str
    auth_uid: Optional[str] = None
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None


class StockIssue(BaseModel):
    sku: str
    requested_quantity: int
    available_quantity: int
    reason: StockIssueReason


class AddressSnapshot(BaseModel):
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    pincode: str
    country: str


class CustomerSnapshot(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: AddressSnapshot
    snapshot_taken_at: datetime


class OrderItemSnapshot(BaseModel):
    sku: str
    product_uid: str
    product_name: str
    size: str
    quantity: int
    selling_price: Money
    cost_price: Money
    subtotal: Money


class ShippingInfo(BaseModel):
    cost_calculated: Money = Decimal("0")
    courier_name: Optional[str] = None
    estimated_days: Optional[int] = None
    calculation_success: bool = False
    note: str = "Shipping cost will be calculated after payment"


class OrderMetadata(BaseModel):
    """Immutable snapshot taken when the order is created"""
    customer_snapshot: CustomerSnapshot
    items_snapshot: List[OrderItemSnapshot]
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)
    checkout_source: CheckoutSource = CheckoutSource.DIRECT
    guest_session_id: Optional[str] = None


class OrderRecord(BaseModel):
    """Persisted order aggregate"""
    id: str
    order_number: str
    payment_provider: str
    payment_order_id: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    order_status: OrderStatus = OrderStatus.CREATED
    payment_status: PaymentStatus = PaymentStatus.PENDING
    shipping_status: ShippingStatus = ShippingStatus.PENDING
    currency: str
    subtotal: Money
    shipping_fee: Money = Decimal("0")
    internal_shipping_cost: Money = Decimal("0")
    assumed_weight: Money
    tax_amount: Money = Decimal("0")
    discount_amount: Money = Decimal("0")
    total_amount: Money
    shipping_name: str
    shipping_phone: str
    shipping_email: Optional[str] = None
    shipping_address1: str
    shipping_address2: Optional[str] = None
    shipping_city: str
    shipping_state: str
    shipping_pincode: str
    shipping_country: str
    metadata: OrderMetadata
    created_at: datetime
    updated_at: datetime


class OrderLineItem(BaseModel):
    order_id: str
    product_uid: str
    sku: str
    name: str
    quantity: int
    price: Money
    cost_price: Money
    subtotal: Money


class GatewayOrder(BaseModel):
    """Order object returned by the payment gateway"""
    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: Optional[str] = None


# --- Responses ---

class CheckoutResponse(BaseModel):
    """Success payload for the storefront payment widget"""
    success: bool = True
    order_id: str
    order_number: str
    subtotal: Money
    shipping_fee: Money
    total_payable: Money
    payment_gateway: str
    # Field names the client-side Razorpay widget reads
    razorpay_order_id: str
    razorpay_key_id: Optional[str] = None
    created_at: datetime


class CheckoutOutcome(str, Enum):
    SUCCESS = "success"
    INVALID_REQUEST = "invalid_request"
    STOCK_CONFLICT = "stock_conflict"
    DEPENDENCY_FAILED = "dependency_failed"


class CheckoutResult(BaseModel):
    """Outcome of one checkout attempt"""
    outcome: CheckoutOutcome
    order: Optional[CheckoutResponse] = None
    error: Optional[str] = None
    field: Optional[str] = None
    invalid_items: List[StockIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome == CheckoutOutcome.SUCCESS


class OrderSummary(BaseModel):
    """Order details for the confirmation page"""
    id: str
    order_number: str
    subtotal: Money
    shipping_fee: Money
    total_amount: Money
    payment_status: PaymentStatus
    created_at: datetime
    metadata: OrderMetadata

    @classmethod
    def from_record(cls, order: OrderRecord) -> "OrderSummary":
        return cls(
            id=order.id,
            order_number=order.order_number,
            subtotal=order.subtotal,
            shipping_fee=order.shipping_fee,
            total_amount=order.total_amount,
            payment_status=order.payment_status,
            created_at=order.created_at,
            metadata=order.metadata,
        )
