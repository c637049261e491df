# -*- coding: utf-8 -*-
"""
Wolt group order client.

Implements the provider side of OrderSession over HTTP. Calls are blocking
requests calls run in a worker thread. Amounts from the API are in minor
units (agorot) and converted to NIS here.
"""

import asyncio
import logging
from typing import Any, Dict

import requests

from order_session import DeliveryStatus, OrderCanceledError, OrderDetails, VenueInfo
from utils import WOLT_API_BASE, WOLT_AUTH_TOKEN

logger = logging.getLogger(__name__)

DELIVERY_STATUSES = {
    "active": DeliveryStatus.ACTIVE,
    "purchased": DeliveryStatus.PURCHASED,
    "delivering": DeliveryStatus.DELIVERING,
    "delivered": DeliveryStatus.DELIVERED,
    "canceled": DeliveryStatus.CANCELED,
}


class WoltAPIError(Exception):
    """Raised when the Wolt API returns an unusable response"""
    pass


class WoltClient:
    def __init__(self, base_url: str = WOLT_API_BASE, auth_token: str = WOLT_AUTH_TOKEN,
                 poll_interval: float = 10.0, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.session = requests.Session()
        if auth_token:
            self.session.headers["Authorization"] = f"Bearer {auth_token}"

    def request(self, method: str, path: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout)
            response.raise_for_status()
            return response.json() if response.content else {}
        except requests.RequestException as e:
            raise WoltAPIError(f"{method} {path}: {e}") from e
        except ValueError as e:
            raise WoltAPIError(f"{method} {path}: invalid JSON: {e}") from e

    async def join(self, order_id: str) -> "WoltGroupOrder":
        await asyncio.to_thread(self.request, "POST", f"/group_order/{order_id}/join")
        return WoltGroupOrder(self, order_id)


class WoltGroupOrder:
    def __init__(self, client: WoltClient, order_id: str):
        self.client = client
        self.id = order_id

    async def _get(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self.client.request, "GET", f"/group_order/{self.id}")

    async def venue(self) -> VenueInfo:
        data = await self._get()
        venue = data.get("venue") or {}
        if not venue.get("name"):
            raise WoltAPIError(f"no venue for group order {self.id}")
        return VenueInfo(name=venue["name"], online=bool(venue.get("online", True)))

    async def mark_as_ready(self) -> None:
        await asyncio.to_thread(self.client.request, "POST", f"/group_order/{self.id}/ready")

    async def wait_until_finished(self) -> None:
        """Poll until the host stops accepting additions."""
        while True:
            data = await self._get()
            status = data.get("status")
            if status == "canceled":
                raise OrderCanceledError(f"order canceled: {self.id}")
            if status != "active":
                return
            await asyncio.sleep(self.client.poll_interval)

    async def details(self) -> OrderDetails:
        data = await self._get()
        try:
            host = data["host"]["name"]
            baskets = {
                participant["name"]: participant.get("basket_total", 0) / 100
                for participant in data.get("participants", [])
            }
        except (KeyError, TypeError) as e:
            raise WoltAPIError(f"invalid details for group order {self.id}: {e}") from e
        return OrderDetails(host=host, baskets=baskets)

    async def calculate_delivery_rate(self) -> int:
        data = await self._get()
        delivery_price = data.get("delivery_price")
        if delivery_price is None:
            raise WoltAPIError(f"no delivery price for group order {self.id}")
        return int(round(delivery_price / 100))

    async def status(self) -> DeliveryStatus:
        data = await self._get()
        purchase = data.get("purchase") or {}
        raw = purchase.get("status") or data.get("status", "active")
        try:
            return DELIVERY_STATUSES[raw]
        except KeyError:
            logger.warning(f"Unknown status {raw!r} for group order {self.id}")
            return DeliveryStatus.PURCHASED
