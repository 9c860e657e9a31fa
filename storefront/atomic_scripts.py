"""
Lua scripts for atomic Redis writes.
"""
from typing import Dict, List, Optional

# Failure codes shared with RedisCheckoutStore; the script returns 1 on insert
INSERT_DUPLICATE = 0
INSERT_MISSING_PAYMENT_ID = -1

# Script to insert an order hash together with its lookup indexes.
# KEYS: order key, order-number index key, [customer orders set]
# ARGV: payment order id, order id, field1, value1, field2, value2, ...
INSERT_ORDER_SCRIPT = """
local order_key = KEYS[1]
local number_key = KEYS[2]
local payment_order_id = ARGV[1]
local order_id = ARGV[2]

-- No order without a gateway reference
if payment_order_id == nil or payment_order_id == '' then
    return -1
end

-- Order numbers are unique
if redis.call('EXISTS', number_key) == 1 or redis.call('EXISTS', order_key) == 1 then
    return 0
end

local fields = {}
for i = 3, #ARGV do
    fields[#fields + 1] = ARGV[i]
end

redis.call('HSET', order_key, unpack(fields))
redis.call('SET', number_key, order_id)

if #KEYS == 3 then
    redis.call('SADD', KEYS[3], order_id)
end

return 1
"""

# Script to find or create the customer linked to an auth user
# KEYS: customer key, auth index key
# ARGV: customer id, field1, value1, ...
FIND_OR_CREATE_CUSTOMER_SCRIPT = """
local customer_key = KEYS[1]
local auth_key = KEYS[2]
local customer_id = ARGV[1]

local existing_id = redis.call('GET', auth_key)
if existing_id then
    return existing_id
end

local fields = {}
for i = 2, #ARGV do
    fields[#fields + 1] = ARGV[i]
end

redis.call('HSET', customer_key, unpack(fields))
redis.call('SET', auth_key, customer_id)

return customer_id
"""


def _flatten(fields: Dict[str, str]) -> List[str]:
    flat: List[str] = []
    for name, value in fields.items():
        flat.extend([name, value])
    return flat


class AtomicScripts:
    """Runs the store's Lua scripts through the RedisClient wrapper"""

    def __init__(self, redis_wrapper):
        """
        Initialize with RedisClient wrapper (not raw redis.Redis client)
        so calls go through the wrapper's retry logic and error handling
        """
        self.redis_wrapper = redis_wrapper

    def insert_order(
        self,
        order_key: str,
        number_key: str,
        payment_order_id: str,
        order_id: str,
        fields: Dict[str, str],
        customer_orders_key: Optional[str] = None
    ) -> int:
        """Execute insert order script, returning one of the INSERT_* codes"""
        keys = [order_key, number_key]
        if customer_orders_key:
            keys.append(customer_orders_key)

        return int(self.redis_wrapper.eval(
            INSERT_ORDER_SCRIPT,
            len(keys),
            *keys,
            payment_order_id or "",
            order_id,
            *_flatten(fields)
        ))

    def find_or_create_customer(
        self,
        customer_key: str,
        auth_key: str,
        customer_id: str,
        fields: Dict[str, str]
    ) -> str:
        """Execute find-or-create customer script, returning the linked customer id"""
        return self.redis_wrapper.eval(
            FIND_OR_CREATE_CUSTOMER_SCRIPT,
            2,
            customer_key,
            auth_key,
            customer_id,
            *_flatten(fields)
        )
