"""
Shared fixtures: in-memory store and payment gateway doubles.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pytest

from storefront.checkout_service import CheckoutService
from storefront.exceptions import (
    DuplicateOrderError,
    MissingPaymentReferenceError,
    PaymentGatewayError,
    StoreError,
)
from storefront.models import (
    CheckoutRequest,
    Customer,
    GatewayOrder,
    OrderLineItem,
    OrderRecord,
    Variant,
)
from storefront.payment_gateway import PaymentGateway
from storefront.store import CheckoutStore

FIXED_NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


class InMemoryCheckoutStore(CheckoutStore):
    """CheckoutStore double that keeps everything in dicts"""

    def __init__(self):
        self.variants: Dict[str, Variant] = {}
        self.customers: Dict[str, Customer] = {}
        self.orders: Dict[str, OrderRecord] = {}
        self.order_items: Dict[str, List[OrderLineItem]] = {}
        self.fetch_calls: List[List[str]] = []
        self.fail_fetch = False
        self.fail_insert_order = False
        self.fail_insert_items = False

    def add_variant(self, sku: str, stock: Optional[int], price="500", cost="200", product_uid="prod-1"):
        self.variants[sku] = Variant(
            id=f"var-{sku}",
            sku=sku,
            stock=stock,
            price=Decimal(price),
            cost=Decimal(cost),
            product_uid=product_uid,
        )

    def add_customer(self, auth_uid: Optional[str] = None) -> Customer:
        customer = Customer(id=str(uuid.uuid4()), auth_uid=auth_uid, email="asha@example.com",
                            first_name="Asha", last_name="Rao", phone="9876543210")
        self.customers[customer.id] = customer
        return customer

    def fetch_variants(self, skus: Iterable[str]) -> List[Variant]:
        skus = list(skus)
        self.fetch_calls.append(skus)
        if self.fail_fetch:
            raise StoreError("variants table unavailable")
        return [self.variants[sku] for sku in skus if sku in self.variants]

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self.customers.get(customer_id)

    def find_customer_by_auth_uid(self, auth_uid: str) -> Optional[Customer]:
        for customer in self.customers.values():
            if customer.auth_uid == auth_uid:
                return customer
        return None

    def create_customer(self, auth_uid, email, first_name, last_name, phone) -> Customer:
        customer = Customer(id=str(uuid.uuid4()), auth_uid=auth_uid, email=email,
                            first_name=first_name, last_name=last_name, phone=phone)
        self.customers[customer.id] = customer
        return customer

    def insert_order(self, order: OrderRecord) -> OrderRecord:
        if self.fail_insert_order:
            raise StoreError("orders insert failed")
        if not order.payment_order_id:
            raise MissingPaymentReferenceError(order.order_number)
        if any(existing.order_number == order.order_number for existing in self.orders.values()):
            raise DuplicateOrderError(order.order_number)
        self.orders[order.id] = order
        return order

    def insert_order_items(self, order_id: str, items: List[OrderLineItem]) -> None:
        if self.fail_insert_items:
            raise StoreError("order_items insert failed")
        self.order_items.setdefault(order_id, []).extend(items)

    def get_order_by_number(self, order_number: str) -> Optional[OrderRecord]:
        for order in self.orders.values():
            if order.order_number == order_number:
                return order
        return None

    def get_order_items(self, order_id: str) -> List[OrderLineItem]:
        return list(self.order_items.get(order_id, []))


class FakePaymentGateway(PaymentGateway):
    """PaymentGateway double recording every create-order call"""

    name = "razorpay"
    public_key_id = "rzp_test_public"

    def __init__(self, fail: bool = False, order_id: Optional[str] = None):
        self.fail = fail
        self.order_id = order_id
        self.calls: List[dict] = []

    def create_order(self, amount_minor, currency, receipt, notes) -> GatewayOrder:
        self.calls.append({"amount_minor": amount_minor, "currency": currency,
                           "receipt": receipt, "notes": notes})
        if self.fail:
            raise PaymentGatewayError("gateway down")
        order_id = self.order_id if self.order_id is not None else f"order_{len(self.calls):04d}"
        return GatewayOrder(id=order_id, amount=amount_minor, currency=currency,
                            receipt=receipt, status="created")


def make_request(items=None, **overrides) -> CheckoutRequest:
    """Valid checkout payload with one A1 line unless items are given"""
    payload = {
        "customer": {"name": "Asha Rao", "phone": "+91 98765 43210", "email": "asha@example.com"},
        "address": {
            "line1": "12 MG Road",
            "line2": "",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560001",
        },
        "items": items if items is not None else [
            {"sku": "A1", "product_uid": "prod-1", "name": "Linen Shirt", "size": "M",
             "quantity": 2, "price": 500},
        ],
    }
    payload.update(overrides)
    return CheckoutRequest.model_validate(payload)


@pytest.fixture
def store():
    store = InMemoryCheckoutStore()
    store.add_variant("A1", stock=5)
    return store


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def service(store, gateway):
    return CheckoutService(
        store=store,
        gateway=gateway,
        order_number_factory=lambda: "ZYN-20261019-0042",
        clock=lambda: FIXED_NOW,
    )
