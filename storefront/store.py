"""
Inventory, customer, and order persistence for checkout.

CheckoutStore is the interface the checkout service depends on;
RedisCheckoutStore is the production implementation.

Key layout:
    variant:{sku}              hash   id, sku, stock, price, cost, product_uid
    customer:{id}              hash   customer profile
    customer:auth:{auth_uid}   string customer id linked to an auth user
    customer:{id}:orders       set    order ids
    order:{id}                 hash   order fields, metadata as JSON
    order:number:{number}      string order id
    order:{id}:items           list   JSON encoded order line items
"""
import json
import uuid
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from storefront.atomic_scripts import (
    AtomicScripts,
    INSERT_DUPLICATE,
    INSERT_MISSING_PAYMENT_ID,
)
from storefront.exceptions import DuplicateOrderError, MissingPaymentReferenceError
from storefront.models import Customer, OrderLineItem, OrderRecord, Variant
from storefront.redis_client import RedisClient

logger = logging.getLogger(__name__)


class CheckoutStore(ABC):
    """Storage operations used by the checkout flow"""

    @abstractmethod
    def fetch_variants(self, skus: Iterable[str]) -> List[Variant]:
        """Fetch the variants matching the given SKUs in one batch"""

    @abstractmethod
    def get_customer(self, customer_id: str) -> Optional[Customer]:
        pass

    @abstractmethod
    def find_customer_by_auth_uid(self, auth_uid: str) -> Optional[Customer]:
        pass

    @abstractmethod
    def create_customer(
        self,
        auth_uid: str,
        email: str,
        first_name: str,
        last_name: str,
        phone: str
    ) -> Customer:
        pass

    @abstractmethod
    def insert_order(self, order: OrderRecord) -> OrderRecord:
        """
        Persist a new order in a single write.

        Raises:
            MissingPaymentReferenceError: If the order has no payment order id
            DuplicateOrderError: If the order number is already taken
        """

    @abstractmethod
    def insert_order_items(self, order_id: str, items: List[OrderLineItem]) -> None:
        pass

    @abstractmethod
    def get_order_by_number(self, order_number: str) -> Optional[OrderRecord]:
        pass

    @abstractmethod
    def get_order_items(self, order_id: str) -> List[OrderLineItem]:
        pass

    def ping(self) -> bool:
        return True

    def close(self):
        pass


def _to_hash(model, exclude: Optional[set] = None) -> Dict[str, str]:
    """Flatten a model into Redis hash fields, dropping None values"""
    fields: Dict[str, str] = {}
    for name, value in model.model_dump(exclude=exclude, exclude_none=True).items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        fields[name] = str(value)
    return fields


def _from_hash(raw: Dict[str, str]) -> Dict[str, str]:
    return {name: value for name, value in raw.items() if value != ""}


class RedisCheckoutStore(CheckoutStore):
    """CheckoutStore backed by Redis hashes and Lua scripts"""

    def __init__(self, redis: RedisClient):
        self.redis = redis
        self.scripts = AtomicScripts(redis)

    def _variant_key(self, sku: str) -> str:
        return f"variant:{sku}"

    def _customer_key(self, customer_id: str) -> str:
        return f"customer:{customer_id}"

    def _auth_key(self, auth_uid: str) -> str:
        return f"customer:auth:{auth_uid}"

    def _customer_orders_key(self, customer_id: str) -> str:
        return f"customer:{customer_id}:orders"

    def _order_key(self, order_id: str) -> str:
        return f"order:{order_id}"

    def _order_number_key(self, order_number: str) -> str:
        return f"order:number:{order_number}"

    def _order_items_key(self, order_id: str) -> str:
        return f"order:{order_id}:items"

    def fetch_variants(self, skus: Iterable[str]) -> List[Variant]:
        unique_skus = list(dict.fromkeys(skus))
        if not unique_skus:
            return []

        rows = self.redis.hgetall_many([self._variant_key(sku) for sku in unique_skus])

        variants: List[Variant] = []
        for sku, raw in zip(unique_skus, rows):
            if not raw:
                continue
            data = _from_hash(raw)
            data.setdefault("sku", sku)
            variants.append(Variant.model_validate(data))
        return variants

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        raw = self.redis.hgetall(self._customer_key(customer_id))
        if not raw:
            return None
        return Customer.model_validate({"id": customer_id, **_from_hash(raw)})

    def find_customer_by_auth_uid(self, auth_uid: str) -> Optional[Customer]:
        customer_id = self.redis.get(self._auth_key(auth_uid))
        if not customer_id:
            return None
        return self.get_customer(customer_id)

    def create_customer(
        self,
        auth_uid: str,
        email: str,
        first_name: str,
        last_name: str,
        phone: str
    ) -> Customer:
        customer = Customer(
            id=str(uuid.uuid4()),
            auth_uid=auth_uid,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )
        linked_id = self.scripts.find_or_create_customer(
            customer_key=self._customer_key(customer.id),
            auth_key=self._auth_key(auth_uid),
            customer_id=customer.id,
            fields=_to_hash(customer),
        )

        if linked_id != customer.id:
            # Another request linked this auth user first
            logger.info(f"Auth user already linked to customer {linked_id}")
            return self.get_customer(linked_id) or customer.model_copy(update={"id": linked_id})
        return customer

    def insert_order(self, order: OrderRecord) -> OrderRecord:
        if not order.payment_order_id:
            raise MissingPaymentReferenceError(order.order_number)

        fields = _to_hash(order, exclude={"metadata"})
        fields["metadata"] = order.metadata.model_dump_json()

        code = self.scripts.insert_order(
            order_key=self._order_key(order.id),
            number_key=self._order_number_key(order.order_number),
            payment_order_id=order.payment_order_id,
            order_id=order.id,
            fields=fields,
            customer_orders_key=self._customer_orders_key(order.customer_id) if order.customer_id else None,
        )

        if code == INSERT_MISSING_PAYMENT_ID:
            raise MissingPaymentReferenceError(order.order_number)
        if code == INSERT_DUPLICATE:
            raise DuplicateOrderError(order.order_number)
        return order

    def insert_order_items(self, order_id: str, items: List[OrderLineItem]) -> None:
        if not items:
            return
        self.redis.rpush(self._order_items_key(order_id), *[item.model_dump_json() for item in items])

    def get_order_by_number(self, order_number: str) -> Optional[OrderRecord]:
        order_id = self.redis.get(self._order_number_key(order_number))
        if not order_id:
            return None

        raw = self.redis.hgetall(self._order_key(order_id))
        if not raw:
            return None

        data = _from_hash(raw)
        data["metadata"] = json.loads(data["metadata"])
        return OrderRecord.model_validate(data)

    def get_order_items(self, order_id: str) -> List[OrderLineItem]:
        return [
            OrderLineItem.model_validate_json(item)
            for item in self.redis.lrange(self._order_items_key(order_id))
        ]

    def ping(self) -> bool:
        return self.redis.ping()

    def close(self):
        self.redis.close()
