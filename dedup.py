# -*- coding: utf-8 -*-
"""Registry of group orders currently being handled."""

import logging
import threading
from typing import Dict

logger = logging.getLogger(__name__)


class DedupRegistry:
    """
    Set of order IDs in progress, shared by all message handlers.

    Admission is an atomic check-and-insert; handlers may run on the event
    loop and on webhook threads at the same time.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: Dict[str, object] = {}

    def try_admit(self, order_id: str) -> bool:
        """Insert the order ID if absent. Returns whether the caller owns it now."""
        with self._lock:
            if order_id in self._orders:
                return False
            self._orders[order_id] = object()
            return True

    def release(self, order_id: str) -> None:
        with self._lock:
            self._orders.pop(order_id, None)

    def __contains__(self, order_id: str) -> bool:
        with self._lock:
            return order_id in self._orders

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)
