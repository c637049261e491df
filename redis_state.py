"""
Redis State Management for the Wolt rates bot

Provides persistent storage for FINALIZED ORDERS and tracked debts.
Automatically serializes datetime objects and nested rate lists.

Environment Variables (one of):
- REDIS_URL: redis:// or rediss:// connection URL
- UPSTASH_REDIS_REST_URL + UPSTASH_REDIS_REST_TOKEN: Upstash Redis credentials
"""

import os
import json
import logging
from datetime import datetime, timedelta
from typing import Dict, Any, Optional
from zoneinfo import ZoneInfo
import redis

logger = logging.getLogger(__name__)

ORDER_TTL_SECONDS = 604800  # 7 days

# Redis connection (initialized on first use)
_redis_client = None


def get_redis_client():
    """Get or create Redis client instance."""
    global _redis_client

    if _redis_client is None:
        redis_url = os.environ.get("REDIS_URL")
        upstash_url = os.environ.get("UPSTASH_REDIS_REST_URL")
        upstash_token = os.environ.get("UPSTASH_REDIS_REST_TOKEN")

        if not redis_url and not (upstash_url and upstash_token):
            logger.warning("Redis credentials not found - persistence disabled")
            return None

        try:
            if redis_url:
                _redis_client = redis.Redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_timeout=5,
                    socket_connect_timeout=5
                )
            else:
                _redis_client = redis.Redis(
                    host=upstash_url.replace("https://", "").replace("http://", ""),
                    port=6379,
                    password=upstash_token,
                    ssl=True,
                    decode_responses=True,
                    socket_timeout=5,
                    socket_connect_timeout=5
                )
            # Test connection
            _redis_client.ping()
            logger.info("✅ Redis connection established")
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            _redis_client = None

    return _redis_client


def _serialize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_serialize_value(item) for item in value]
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    return value


def serialize_order(order_data: Dict[str, Any]) -> str:
    """
    Serialize order data to JSON string.
    Converts datetime objects to ISO format strings.
    """
    return json.dumps(_serialize_value(order_data), ensure_ascii=False)


def deserialize_order(json_str: str) -> Dict[str, Any]:
    """
    Deserialize order data from JSON string.
    Converts the created_at ISO string back to a datetime.
    """
    order_data = json.loads(json_str)

    created_at = order_data.get("created_at")
    if isinstance(created_at, str):
        try:
            order_data["created_at"] = datetime.fromisoformat(created_at)
        except ValueError:
            logger.warning(f"Invalid created_at {created_at!r} for order {order_data.get('order_id')}")

    return order_data


def redis_save_order(order_id: str, order_data: Dict[str, Any]) -> bool:
    """
    Save single order to Redis.

    Args:
        order_id: Group order identifier
        order_data: Domain order dictionary

    Returns:
        True if saved successfully, False otherwise
    """
    client = get_redis_client()
    if not client:
        return False

    try:
        key = f"order:{order_id}"
        serialized = serialize_order(order_data)
        # Orders older than a week are auto-deleted
        client.set(key, serialized, ex=ORDER_TTL_SECONDS)
        return True
    except redis.RedisError as e:
        logger.error(f"Failed to save order {order_id} to Redis: {e}")
        return False


def redis_get_order(order_id: str) -> Optional[Dict[str, Any]]:
    """
    Get single order from Redis.

    Returns:
        Order data dict or None if not found
    """
    client = get_redis_client()
    if not client:
        return None

    try:
        data = client.get(f"order:{order_id}")
        if data:
            return deserialize_order(data)
        return None
    except redis.RedisError as e:
        logger.error(f"Failed to get order {order_id} from Redis: {e}")
        return None


def redis_get_all_orders() -> Dict[str, Dict[str, Any]]:
    """
    Get all orders from Redis.

    Returns:
        Dictionary mapping order_id -> order_data
    """
    client = get_redis_client()
    if not client:
        return {}

    try:
        orders = {}
        for key in client.scan_iter("order:*"):
            data = client.get(key)
            if data:
                orders[key.replace("order:", "", 1)] = deserialize_order(data)
        return orders
    except redis.RedisError as e:
        logger.error(f"Failed to get all orders from Redis: {e}")
        return {}


def redis_cleanup_old_orders(days_to_keep: int = 2, tz: str = "Asia/Jerusalem") -> int:
    """
    Delete orders older than specified days.
    Keeps orders from today and the specified number of previous days.

    Returns:
        Number of orders deleted
    """
    client = get_redis_client()
    if not client:
        logger.warning("Redis client not available - cleanup skipped")
        return 0

    # Beginning of day X days ago, timezone-aware
    cutoff_date = datetime.now(ZoneInfo(tz)).replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=days_to_keep)
    logger.info(f"Starting Redis cleanup: deleting orders older than {cutoff_date.strftime('%Y-%m-%d')}")

    deleted_count = 0
    try:
        for key in client.scan_iter("order:*"):
            data = client.get(key)
            if not data:
                continue
            order = deserialize_order(data)
            created_at = order.get("created_at")
            if isinstance(created_at, datetime) and created_at.tzinfo and created_at < cutoff_date:
                client.delete(key)
                deleted_count += 1
                logger.info(f"Deleted old order {order.get('order_id')} (created: {created_at.strftime('%Y-%m-%d %H:%M')})")
    except redis.RedisError as e:
        logger.error(f"Failed to cleanup old orders: {e}")

    logger.info(f"✅ Redis cleanup complete: deleted {deleted_count} orders")
    return deleted_count


class OrderStore:
    """Order history persistence used by the order service."""

    def save_order(self, order_data: Dict[str, Any]) -> bool:
        return redis_save_order(order_data["order_id"], order_data)
