# -*- coding: utf-8 -*-
"""
Background monitors for a joined group order.

monitor_venue runs while the service waits for the order to be ready and
must be cancelled by its caller. monitor_delivery follows the order after
the rates were published, until it is delivered, canceled, or times out.
"""

import asyncio
import logging
from typing import Any, Optional

from telegram.helpers import escape_markdown

from order_session import DeliveryStatus, OrderSession, WaitTimedOutError
from utils import safe_inform

logger = logging.getLogger(__name__)


async def monitor_venue(session: OrderSession, transport: Any, channel: int, reply_to: Optional[int],
                        interval: float, announced: bool = False) -> None:
    """
    Report venue changes into the chat until cancelled.

    Announces the venue once when it becomes known (unless it was already
    announced on join) and warns once when it goes offline. Never raises
    anything but CancelledError.
    """
    offline_notified = False
    while True:
        try:
            venue = await session.venue()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Error getting venue for order {session.id}: {e}")
        else:
            if not announced and venue.name:
                await safe_inform(transport, channel, f"Hi 👋, I've joined the order from [{venue.name}]", reply_to)
                announced = True
            if not venue.online and not offline_notified:
                await safe_inform(transport, channel, f"Heads up, {escape_markdown(venue.name, version=1)} seems to be closed right now 🔒", reply_to)
                offline_notified = True

        await asyncio.sleep(interval)


async def _poll_until_done(session: OrderSession, transport: Any, channel: int, reply_to: Optional[int],
                           rates_message: str, interval: float) -> DeliveryStatus:
    last_status = None
    while True:
        try:
            status = await session.status()
        except Exception as e:
            logger.warning(f"Error getting status for order {session.id}: {e}")
            await asyncio.sleep(interval)
            continue

        if status != last_status:
            logger.info(f"Order {session.id} status: {status}")
            last_status = status
            if session.details_message_id:
                try:
                    await transport.edit_event(channel, session.details_message_id,
                                               f"{rates_message}\nOrder status: {status}")
                except Exception as e:
                    logger.error(f"Error updating rates message for order {session.id}: {e}")

        if status in (DeliveryStatus.DELIVERED, DeliveryStatus.CANCELED):
            return status

        await asyncio.sleep(interval)


async def monitor_delivery(session: OrderSession, transport: Any, channel: int, reply_to: Optional[int],
                           rates_message: str, interval: float, timeout: float) -> DeliveryStatus:
    """
    Poll the order status every interval seconds until it is delivered or canceled.

    Raises WaitTimedOutError once timeout elapses. No retries past the deadline.
    """
    try:
        status = await asyncio.wait_for(
            _poll_until_done(session, transport, channel, reply_to, rates_message, interval),
            timeout,
        )
    except asyncio.TimeoutError:
        session.time_out()
        raise WaitTimedOutError(f"timed out after {timeout}s waiting for order {session.id} to be done")

    if status == DeliveryStatus.CANCELED:
        session.cancel()
        await safe_inform(transport, channel, f"Order for group ID {session.id} was canceled", reply_to)
    else:
        session.finish()
        await safe_inform(transport, channel, f"Order {session.id} was delivered, bon appétit 🍽", reply_to)
    return status
