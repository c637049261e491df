# -*- coding: utf-8 -*-
# service.py - Order handling for Wolt group order links

# =============================================================================
# ORDER HANDLING WORKFLOW
# =============================================================================
# Link posted in chat → first Wolt group link picked → order admitted once
# → bot reacts and joins → waits for host to close the order (venue monitor
# in background) → rates computed → order saved (background) → rates
# published as a reply → debts tracked → delivery followed until done
#
# Every path that admitted an order releases it from the DedupRegistry.
# =============================================================================

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Callable, Dict, Optional, Set
from zoneinfo import ZoneInfo

import utils
from dedup import DedupRegistry
from links import LinksRequest, get_group_id
from monitors import monitor_delivery, monitor_venue
from order_session import OrderCanceledError, OrderSession, WaitTimedOutError
from rates import GroupRate, build_group_rates, build_rates_message
from schedule_gate import local_now, parse_cutoff, parse_timezone, should_handle_order

logger = logging.getLogger(__name__)


class WontJoinError(Exception):
    """Raised when the bot cannot act in the channel"""
    pass


class JoinOrderError(Exception):
    """Raised when joining the group order failed"""
    pass


class PublishError(Exception):
    """Raised when the rates message could not be published"""
    pass


@dataclass
class ServiceConfig:
    wolt_domain: str = "wolt.com"
    joined_order_emoji: str = "👀"
    mark_as_paid_reaction: str = "👌"
    timeout_for_ready: float = 3600.0
    order_done_timeout: float = 7200.0
    wait_between_status_check: float = 60.0
    venue_check_interval: float = 30.0
    dont_join_after: Optional[time] = None
    dont_join_after_tz: Optional[ZoneInfo] = None

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        return cls(
            wolt_domain=utils.WOLT_DOMAIN,
            joined_order_emoji=utils.JOINED_ORDER_EMOJI,
            mark_as_paid_reaction=utils.MARK_AS_PAID_REACTION,
            timeout_for_ready=utils.TIMEOUT_FOR_READY,
            order_done_timeout=utils.ORDER_DONE_TIMEOUT,
            wait_between_status_check=utils.WAIT_BETWEEN_STATUS_CHECK,
            venue_check_interval=utils.VENUE_CHECK_INTERVAL,
            dont_join_after=parse_cutoff(utils.DONT_JOIN_AFTER),
            dont_join_after_tz=parse_timezone(utils.DONT_JOIN_AFTER_TZ),
        )


class Service:
    def __init__(self, cfg: ServiceConfig, provider: Any, transport: Any, users: Any,
                 order_store: Any, debts: Any, registry: Optional[DedupRegistry] = None,
                 clock: Callable[[], datetime] = local_now):
        self.cfg = cfg
        self.provider = provider
        self.transport = transport
        self.users = users
        self.order_store = order_store
        self.debts = debts
        self.registry = registry if registry is not None else DedupRegistry()
        self.clock = clock
        self._background_tasks: Set[asyncio.Task] = set()

    async def handle_link_message(self, req: LinksRequest) -> None:
        # handle just one link in a message
        group_id = get_group_id(req.links, self.cfg.wolt_domain)
        if group_id is None:
            logger.info(f"No wolt links found ({req.links!r})")
            return

        if not self.registry.try_admit(group_id):
            logger.info(f"Already working on order {group_id}")
            return

        try:
            await self._handle_order(req, group_id)
        finally:
            self.registry.release(group_id)

    async def _handle_order(self, req: LinksRequest, group_id: str) -> None:
        try:
            await self.transport.add_reaction(req.channel, req.message_id, self.cfg.joined_order_emoji)
        except Exception as e:
            raise WontJoinError("wont join because the channel is not accessible") from e

        if not should_handle_order(self.clock(), self.cfg.dont_join_after, self.cfg.dont_join_after_tz):
            logger.info(f"Order {group_id} is not in tracking time")
            try:
                await self.transport.inform_event(
                    req.channel, "It's too late for me... I won't track prices for this order 😴", "", req.message_id)
            except Exception as e:
                raise WontJoinError("wont join because the channel is not accessible") from e
            return

        try:
            session = await OrderSession.join(self.provider, group_id)
        except Exception as e:
            await utils.safe_inform(self.transport, req.channel, "I had an error joining the order", req.message_id)
            raise JoinOrderError(f"join group order {group_id}: {e}") from e

        announced = False
        try:
            venue = await session.venue()
        except Exception as e:
            logger.warning(f"Venue for order {group_id} not known yet: {e}")
        else:
            await utils.safe_inform(self.transport, req.channel, f"Hi 👋, I've joined the order from [{venue.name}]", req.message_id)
            announced = True

        try:
            group_rate = await self._get_rate_for_group(session, req.channel, req.message_id, announced)
        except OrderCanceledError:
            await utils.safe_inform(self.transport, req.channel, f"Order for group ID {group_id} was canceled", req.message_id)
            return
        except WaitTimedOutError:
            await utils.safe_inform(self.transport, req.channel, "Timed out waiting for order to be ready", req.message_id)
            return
        except Exception as e:
            logger.error(f"Error getting rate for group {group_id}: {e}")
            await utils.safe_inform(self.transport, req.channel, f"I had an error getting rate for group ID {group_id}", req.message_id)
            return

        self._save_order_async(session, group_rate, req.channel)

        rates_message = build_rates_message(group_rate, group_id)
        try:
            session.details_message_id = await self.transport.inform_event(
                req.channel, rates_message, self.cfg.mark_as_paid_reaction, req.message_id)
        except Exception as e:
            raise PublishError(f"failed sending details message: {e}") from e

        try:
            await asyncio.to_thread(self.debts.add_debts, req.channel, group_id, group_rate, session.details_message_id)
        except Exception as e:
            logger.error(f"Error adding debts: {e}")
            await utils.safe_inform(self.transport, req.channel, "I had an error adding debts, I won't track this order", req.message_id)

        try:
            await monitor_delivery(session, self.transport, req.channel, req.message_id, rates_message,
                                   self.cfg.wait_between_status_check, self.cfg.order_done_timeout)
        except WaitTimedOutError:
            await utils.safe_inform(self.transport, req.channel, "Timed out waiting for order to be done", req.message_id)

    async def _get_rate_for_group(self, session: OrderSession, channel: int, message_id: int,
                                  announced: bool) -> GroupRate:
        await session.mark_as_ready()

        monitor = asyncio.create_task(
            monitor_venue(session, self.transport, channel, message_id, self.cfg.venue_check_interval, announced))
        try:
            await session.wait_until_ready(self.cfg.timeout_for_ready)
        finally:
            monitor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor

        details = await session.details()
        rates = details.rate_by_person()

        try:
            delivery_rate = await session.calculate_delivery_rate()
        except Exception as e:
            logger.warning(f"Error getting delivery rate: {e}")
            await utils.safe_inform(self.transport, channel, "I can't find the delivery rate, I'll publish the rates without including the delivery rate", message_id)
            delivery_rate = 0

        return await asyncio.to_thread(build_group_rates, rates, details.host, delivery_rate, self.users)

    def _save_order_async(self, session: OrderSession, group_rate: GroupRate, receiver: int) -> None:
        """
        Fire-and-forget save of the finalized order, at most once per computed rate.

        The order is converted before the task is scheduled and holds nothing
        that is set after the rates are published.
        """
        try:
            order = session.to_order(group_rate.rates, receiver, group_rate.delivery_rate)
        except ValueError as e:
            logger.error(f"Error converting order {session.id!r}: {e}")
            return

        task = asyncio.create_task(self._save_order(session.id, order))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _save_order(self, order_id: str, order: Dict[str, Any]) -> None:
        try:
            saved = await asyncio.to_thread(self.order_store.save_order, order)
        except Exception as e:
            logger.error(f"Error saving order {order_id!r}: {e}")
            return
        if saved is False:
            logger.error(f"Error saving order {order_id!r}: store unavailable")
            return
        logger.info(f"✅ Saved order {order_id}")

    async def wait_for_background_tasks(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def handle_reaction(self, channel: int, message_id: int, user_id: int, emoji: str) -> None:
        """Apply a reaction on a published rates message to the tracked debts."""
        try:
            announcement = await asyncio.to_thread(self.debts.handle_reaction, channel, message_id, user_id, emoji)
        except Exception as e:
            logger.error(f"Error handling reaction {emoji} on message {message_id}: {e}")
            return
        if announcement:
            await utils.safe_inform(self.transport, channel, announcement, message_id)
