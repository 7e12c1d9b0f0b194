"""
Redis constants and configuration.
Centralizes TTLs and key prefixes for better visibility and management.
"""

# =============================================================================
# Key Prefixes
# =============================================================================

# Idempotency coordinator: exclusive execution lock and cached result per key
PREFIX_IDEMPOTENCY_LOCK = "lock:"
PREFIX_IDEMPOTENCY_RESULT = "idem:result:"

# Pub/sub channel for order events, one per restaurant
CHANNEL_RESTAURANT_ORDERS_TEMPLATE = "restaurant:{restaurant_id}:orders"


def get_idempotency_lock_key(key: str) -> str:
    return f"{PREFIX_IDEMPOTENCY_LOCK}{key}"


def get_idempotency_result_key(key: str) -> str:
    return f"{PREFIX_IDEMPOTENCY_RESULT}{key}"


def get_restaurant_orders_channel(restaurant_id: str) -> str:
    """Channel that receives ORDER_CREATED / ORDER_STATUS_CHANGED for a restaurant."""
    return CHANNEL_RESTAURANT_ORDERS_TEMPLATE.format(restaurant_id=restaurant_id)
