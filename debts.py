# -*- coding: utf-8 -*-
"""
Debt tracking for published rates.

Debts live in redis under the published rates message. Participants clear
their own debt by reacting with MARK_AS_PAID_REACTION; the host clears all
debts of the order by reacting with HOST_REMOVE_DEBTS_REACTION.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

import redis

from rates import GroupRate
from redis_state import get_redis_client
from utils import HOST_REMOVE_DEBTS_REACTION, MARK_AS_PAID_REACTION

logger = logging.getLogger(__name__)

DEBTS_TTL_SECONDS = 2592000  # 30 days


class DebtsError(Exception):
    """Raised when debts for an order cannot be tracked"""
    pass


def debts_key(channel: int, message_id: int) -> str:
    """Hash of participant id -> JSON {"name", "amount"} still owed to the host."""
    return f"debts:{channel}:{message_id}"


def debts_order_key(channel: int, message_id: int) -> str:
    """Hash with the order_id and host_id the debts belong to."""
    return f"debts:{channel}:{message_id}:order"


class DebtTracker:
    def __init__(self, client_factory: Callable[[], Any] = get_redis_client,
                 paid_reaction: str = MARK_AS_PAID_REACTION,
                 remove_reaction: str = HOST_REMOVE_DEBTS_REACTION):
        self._client_factory = client_factory
        self.paid_reaction = paid_reaction
        self.remove_reaction = remove_reaction

    def _client(self):
        client = self._client_factory()
        if client is None:
            raise DebtsError("redis is not configured")
        return client

    def add_debts(self, channel: int, order_id: str, group_rate: GroupRate, message_id: int) -> int:
        """
        Store who owes the host for this order. Returns the number of debts.

        Only participants known to the user directory can be tracked.
        """
        if group_rate.host_user is None:
            raise DebtsError(f"host {group_rate.host_wolt_user!r} of order {order_id} is not a known user")

        debts = {}
        for rate in group_rate.rates:
            if rate.user is None:
                logger.warning(f"Not tracking debt of unknown user {rate.wolt_name} for order {order_id}")
                continue
            if rate.user.transport_id == group_rate.host_user.transport_id or rate.amount <= 0:
                continue
            debt = {"name": rate.wolt_name, "amount": round(rate.amount, 2)}
            debts[str(rate.user.transport_id)] = json.dumps(debt, ensure_ascii=False)

        key = debts_key(channel, message_id)
        order_key = debts_order_key(channel, message_id)
        try:
            pipe = self._client().pipeline()
            pipe.delete(key, order_key)
            pipe.hset(order_key, mapping={"order_id": order_id, "host_id": str(group_rate.host_user.transport_id)})
            pipe.expire(order_key, DEBTS_TTL_SECONDS)
            if debts:
                pipe.hset(key, mapping=debts)
                pipe.expire(key, DEBTS_TTL_SECONDS)
            pipe.execute()
        except redis.RedisError as e:
            raise DebtsError(f"saving debts for order {order_id}: {e}") from e

        logger.info(f"Tracking {len(debts)} debts for order {order_id}")
        return len(debts)

    def get_debts(self, channel: int, message_id: int) -> Optional[Dict[str, Any]]:
        client = self._client()
        order = client.hgetall(debts_order_key(channel, message_id))
        if not order:
            return None
        debts = client.hgetall(debts_key(channel, message_id))
        return {
            "order_id": order["order_id"],
            "host_id": int(order["host_id"]),
            "debts": {user_id: json.loads(debt) for user_id, debt in debts.items()},
        }

    def handle_reaction(self, channel: int, message_id: int, user_id: int, emoji: str) -> Optional[str]:
        """
        Apply a reaction on a rates message.

        Returns the text to announce in the chat, or None when the reaction
        changes nothing. A payment is removed and the rest counted in one
        MULTI/EXEC; only the payment that empties the debts announces it.
        """
        if emoji not in (self.paid_reaction, self.remove_reaction):
            return None

        key = debts_key(channel, message_id)
        order_key = debts_order_key(channel, message_id)
        client = self._client()
        order = client.hgetall(order_key)
        if not order:
            return None
        order_id = order["order_id"]

        if emoji == self.remove_reaction:
            if user_id != int(order["host_id"]):
                return None
            client.delete(key, order_key)
            logger.info(f"Host removed debts for order {order_id}")
            return f"The host removed all debts for order {order_id} 🕊"

        pipe = client.pipeline()
        pipe.hget(key, str(user_id))
        pipe.hdel(key, str(user_id))
        pipe.hlen(key)
        debt, removed, remaining = pipe.execute()
        if not removed:
            return None
        debt = json.loads(debt)
        logger.info(f"{debt['name']} paid {debt['amount']:.2f} for order {order_id}")

        if remaining == 0:
            client.delete(order_key)
            return f"Everyone paid for order {order_id} 🎉"
        return None
