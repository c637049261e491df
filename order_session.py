# -*- coding: utf-8 -*-
"""
Order Session for a joined Wolt group order.

Wraps the provider's group order handle and owns the lifecycle:

    JOINED → AWAITING_READY → READY → FINISHED
                    ↘ CANCELED / TIMED_OUT

Transitions only move forward. The provider handle must expose these
coroutines: venue(), mark_as_ready(), wait_until_finished(), details(),
calculate_delivery_rate() and status().
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

TIMEZONE = ZoneInfo("Asia/Jerusalem")


def now() -> datetime:
    return datetime.now(TIMEZONE)


class OrderCanceledError(Exception):
    """Raised when the host canceled the group order"""
    pass


class WaitTimedOutError(Exception):
    """Raised when a wait on the group order ran past its deadline"""
    pass


class InvalidTransitionError(Exception):
    """Raised on a lifecycle transition that is not allowed"""
    pass


class LifecycleState(str, Enum):
    JOINED = "joined"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"
    FINISHED = "finished"
    CANCELED = "canceled"
    TIMED_OUT = "timed_out"


class DeliveryStatus(str, Enum):
    ACTIVE = "active"
    PURCHASED = "purchased"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELED = "canceled"

    def __str__(self):
        return self.value


VALID_TRANSITIONS = {
    LifecycleState.JOINED: [LifecycleState.AWAITING_READY, LifecycleState.CANCELED],
    LifecycleState.AWAITING_READY: [LifecycleState.READY, LifecycleState.CANCELED, LifecycleState.TIMED_OUT],
    LifecycleState.READY: [LifecycleState.FINISHED, LifecycleState.CANCELED, LifecycleState.TIMED_OUT],
    LifecycleState.FINISHED: [],
    LifecycleState.CANCELED: [],
    LifecycleState.TIMED_OUT: [],
}


@dataclass(frozen=True)
class VenueInfo:
    name: str
    online: bool = True


@dataclass(frozen=True)
class OrderDetails:
    """Snapshot of a group order once it stopped accepting additions."""
    host: str
    # participant name -> basket total in currency units
    baskets: Dict[str, float] = field(default_factory=dict)

    def rate_by_person(self) -> Dict[str, float]:
        rates = {}
        for person, amount in self.baskets.items():
            if amount is None or amount < 0:
                raise ValueError(f"invalid amount {amount!r} for {person!r}")
            rates[person] = float(amount)
        return rates


class OrderSession:
    """One joined group order, owned by a single handler."""

    def __init__(self, order_id: str, handle: Any):
        self.id = order_id
        self.handle = handle
        self.state = LifecycleState.JOINED
        self.joined_at = now()
        self.venue_info: Optional[VenueInfo] = None
        self.details_snapshot: Optional[OrderDetails] = None
        self.details_message_id: Optional[int] = None
        self._ready_marked = False

    @classmethod
    async def join(cls, provider: Any, order_id: str) -> "OrderSession":
        handle = await provider.join(order_id)
        logger.info(f"✅ Joined group order {order_id}")
        return cls(order_id, handle)

    @property
    def host(self) -> Optional[str]:
        return self.details_snapshot.host if self.details_snapshot else None

    def _transition(self, target: LifecycleState) -> None:
        if target not in VALID_TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"order {self.id}: {self.state.value} → {target.value}")
        logger.info(f"Order {self.id}: {self.state.value} → {target.value}")
        self.state = target

    async def venue(self) -> VenueInfo:
        venue = await self.handle.venue()
        self.venue_info = venue
        return venue

    async def mark_as_ready(self) -> None:
        """Mark the bot's own participation as ready. Provider is called at most once."""
        if self._ready_marked:
            raise InvalidTransitionError(f"order {self.id} was already marked as ready")
        self._transition(LifecycleState.AWAITING_READY)
        self._ready_marked = True
        await self.handle.mark_as_ready()

    async def wait_until_ready(self, timeout: float) -> None:
        """
        Block until the host closes the order for additions.

        Raises OrderCanceledError if the host canceled and WaitTimedOutError
        if the timeout elapsed first.
        """
        if self.state != LifecycleState.AWAITING_READY:
            raise InvalidTransitionError(f"order {self.id} is {self.state.value}, not awaiting ready")

        try:
            await asyncio.wait_for(self.handle.wait_until_finished(), timeout)
        except (asyncio.TimeoutError, WaitTimedOutError):
            self._transition(LifecycleState.TIMED_OUT)
            raise WaitTimedOutError(f"timed out after {timeout}s waiting for order {self.id} to be ready")
        except OrderCanceledError:
            self._transition(LifecycleState.CANCELED)
            raise
        self._transition(LifecycleState.READY)

    async def details(self) -> OrderDetails:
        details = await self.handle.details()
        self.details_snapshot = details
        return details

    async def calculate_delivery_rate(self) -> int:
        return await self.handle.calculate_delivery_rate()

    async def status(self) -> DeliveryStatus:
        return await self.handle.status()

    def finish(self) -> None:
        self._transition(LifecycleState.FINISHED)

    def cancel(self) -> None:
        self._transition(LifecycleState.CANCELED)

    def time_out(self) -> None:
        self._transition(LifecycleState.TIMED_OUT)

    def to_order(self, rates: Sequence[Any], receiver: int, delivery_rate: int = 0) -> Dict[str, Any]:
        """Domain order handed to the order history store."""
        if self.details_snapshot is None:
            raise ValueError(f"order {self.id} has no details yet")

        return {
            "order_id": self.id,
            "receiver": receiver,
            "host": self.host,
            "venue": self.venue_info.name if self.venue_info else None,
            "delivery_rate": delivery_rate,
            "rates": [
                {
                    "name": rate.wolt_name,
                    "user_id": rate.user.transport_id if rate.user else None,
                    "amount": rate.amount,
                }
                for rate in rates
            ],
            "created_at": self.joined_at,
        }
