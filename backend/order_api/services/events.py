"""
Order event notifications.

Events are published on the restaurant's Redis channel after the order
transaction has committed. Delivery is fire-and-forget: a failed publish is
logged and never affects the order.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

import redis

from shared.config.logging import get_logger
from shared.infrastructure.db import utcnow
from shared.infrastructure.redis.constants import get_restaurant_orders_channel

logger = get_logger(__name__)


@dataclass
class OrderEvent:
    """
    Envelope for order notifications.

    ``entity`` carries event-specific data (order id, number, status...),
    ``actor`` identifies who triggered it.
    """

    type: str
    restaurant_id: str
    entity: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1

    def __post_init__(self) -> None:
        if not self.type or not isinstance(self.type, str):
            raise ValueError("Event type must be a non-empty string")
        if not self.restaurant_id:
            raise ValueError("Event restaurant_id is required")

    def to_json(self) -> str:
        data = asdict(self)
        data["ts"] = data["ts"] or utcnow().isoformat()
        return json.dumps(data, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "OrderEvent":
        return cls(**json.loads(json_str))


def publish_order_event(
    redis_client: redis.Redis,
    event_type: str,
    restaurant_id: str,
    entity: dict[str, Any],
    actor: dict[str, Any] | None = None,
) -> int:
    """
    Publish an order event (an EventType constant). Returns the number of
    subscribers reached, 0 if the publish failed.
    """
    event = OrderEvent(
        type=event_type,
        restaurant_id=restaurant_id,
        entity=entity,
        actor=actor or {},
    )
    channel = get_restaurant_orders_channel(restaurant_id)
    try:
        return int(redis_client.publish(channel, event.to_json()))
    except redis.RedisError as e:
        logger.error(
            "Order event publish failed",
            channel=channel,
            event_type=event.type,
            error=str(e),
        )
        return 0
