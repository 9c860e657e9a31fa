from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from conftest import make_request
from storefront.atomic_scripts import FIND_OR_CREATE_CUSTOMER_SCRIPT, INSERT_ORDER_SCRIPT
from storefront.checkout_service import CheckoutService
from storefront.exceptions import DuplicateOrderError, MissingPaymentReferenceError
from storefront.models import OrderLineItem, PaymentStatus
from storefront.store import RedisCheckoutStore


@pytest.fixture
def redis():
    return MagicMock()


@pytest.fixture
def redis_store(redis):
    return RedisCheckoutStore(redis)


def build_order(service_store, gateway):
    """Run a checkout against the in-memory store and return the stored record"""
    service = CheckoutService(store=service_store, gateway=gateway,
                              order_number_factory=lambda: "ZYN-20261019-0042")
    result = service.create_order(make_request())
    return service_store.orders[result.order.order_id]


def test_fetch_variants_reads_each_distinct_sku_once(redis, redis_store):
    redis.hgetall_many.return_value = [
        {"id": "var-1", "sku": "A1", "stock": "5", "price": "500", "cost": "", "product_uid": "prod-1"},
        {},
    ]

    variants = redis_store.fetch_variants(["A1", "B2", "A1"])

    redis.hgetall_many.assert_called_once_with(["variant:A1", "variant:B2"])
    assert len(variants) == 1
    assert variants[0].stock == 5
    assert variants[0].price == Decimal("500")
    assert variants[0].cost is None


def test_insert_order_runs_script_with_payment_id(redis, redis_store, store, gateway):
    order = build_order(store, gateway)
    redis.eval.return_value = 1

    redis_store.insert_order(order)

    args = redis.eval.call_args.args
    assert args[0] == INSERT_ORDER_SCRIPT
    assert args[1] == 2
    assert args[2:4] == (f"order:{order.id}", "order:number:ZYN-20261019-0042")
    assert args[4] == order.payment_order_id
    assert args[5] == order.id


def test_insert_order_indexes_customer_orders(redis, redis_store, store, gateway):
    order = build_order(store, gateway).model_copy(update={"customer_id": "cust-1"})
    redis.eval.return_value = 1

    redis_store.insert_order(order)

    args = redis.eval.call_args.args
    assert args[1] == 3
    assert args[4] == "customer:cust-1:orders"


def test_insert_order_maps_script_codes(redis, redis_store, store, gateway):
    order = build_order(store, gateway)

    redis.eval.return_value = 0
    with pytest.raises(DuplicateOrderError):
        redis_store.insert_order(order)

    redis.eval.return_value = -1
    with pytest.raises(MissingPaymentReferenceError):
        redis_store.insert_order(order)


def test_insert_order_without_payment_id_never_writes(redis, redis_store, store, gateway):
    order = build_order(store, gateway).model_copy(update={"payment_order_id": ""})

    with pytest.raises(MissingPaymentReferenceError):
        redis_store.insert_order(order)
    redis.eval.assert_not_called()


def test_stored_order_reads_back_by_number(redis, redis_store, store, gateway):
    order = build_order(store, gateway)
    redis.eval.return_value = 1
    redis_store.insert_order(order)

    flat = redis.eval.call_args.args[6:]
    stored_hash = dict(zip(flat[::2], flat[1::2]))
    redis.get.return_value = order.id
    redis.hgetall.return_value = stored_hash

    loaded = redis_store.get_order_by_number("ZYN-20261019-0042")

    redis.get.assert_called_with("order:number:ZYN-20261019-0042")
    assert loaded.id == order.id
    assert loaded.payment_order_id == order.payment_order_id
    assert loaded.total_amount == Decimal("1000")
    assert loaded.payment_status == PaymentStatus.PENDING
    assert loaded.created_at == order.created_at
    assert loaded.metadata.customer_snapshot.phone == "9876543210"
    assert "customer_id" not in stored_hash


def test_unknown_order_number_returns_none(redis, redis_store):
    redis.get.return_value = None
    assert redis_store.get_order_by_number("ZYN-00000000-0000") is None


def test_insert_order_items_pushes_json_rows(redis, redis_store):
    item = OrderLineItem(order_id="o-1", product_uid="prod-1", sku="A1", name="Linen Shirt",
                         quantity=2, price=Decimal("500"), cost_price=Decimal("200"),
                         subtotal=Decimal("1000"))

    redis_store.insert_order_items("o-1", [item])

    key, payload = redis.rpush.call_args.args
    assert key == "order:o-1:items"
    redis.lrange.return_value = [payload]
    assert redis_store.get_order_items("o-1") == [item]


def test_create_customer_returns_existing_link(redis, redis_store):
    redis.eval.return_value = "cust-existing"
    redis.hgetall.return_value = {"auth_uid": "auth-1", "email": "a@example.com",
                                  "first_name": "Asha", "last_name": "Rao", "phone": "9876543210"}

    customer = redis_store.create_customer("auth-1", "a@example.com", "Asha", "Rao", "9876543210")

    assert redis.eval.call_args.args[0] == FIND_OR_CREATE_CUSTOMER_SCRIPT
    assert customer.id == "cust-existing"
    redis.hgetall.assert_called_with("customer:cust-existing")


def test_find_customer_by_auth_uid(redis, redis_store):
    redis.get.return_value = None
    assert redis_store.find_customer_by_auth_uid("auth-9") is None
    redis.get.assert_called_with("customer:auth:auth-9")
