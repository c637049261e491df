# -*- coding: utf-8 -*-
"""Rate split for a finished group order and the message that publishes it."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from telegram.helpers import escape_markdown

from users import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rate:
    wolt_name: str
    user: Optional[User]
    amount: float


@dataclass(frozen=True)
class GroupRate:
    rates: Tuple[Rate, ...]
    host_wolt_user: str
    host_user: Optional[User]
    delivery_rate: int


def resolve_user(person: str, users: Any) -> Optional[User]:
    """Exact-name lookup in the user directory. Unknown or failing lookups resolve to None."""
    try:
        matches = users.list_users([person])
    except Exception as e:
        logger.error(f"Error getting user {person} from directory: {e}")
        return None

    if len(matches) == 0:
        logger.warning(f"User not found {person}")
        return None
    if len(matches) > 1:
        logger.warning(f"More than one user for {person}. Taking first: {matches!r}")
    return matches[0]


def build_group_rates(rate_by_person: Mapping[str, float], host: str, delivery_rate: int, users: Any) -> GroupRate:
    """
    Split a group order between its participants.

    The host is always part of the split, with 0.0 if they ordered nothing.
    A delivery rate of 0 means no delivery share is added. Otherwise it is
    divided evenly (as float) between everyone in the split. Rates are
    sorted by Wolt name.
    """
    amounts: Dict[str, float] = dict(rate_by_person)
    if host not in amounts:
        amounts[host] = 0.0

    if delivery_rate:
        price_per_person = float(delivery_rate) / float(len(amounts))
        for person in amounts:
            amounts[person] += price_per_person

    rates = []
    host_user = None
    for person in sorted(amounts):
        user = resolve_user(person, users)
        if person == host:
            host_user = user
        rates.append(Rate(wolt_name=person, user=user, amount=amounts[person]))

    return GroupRate(
        rates=tuple(rates),
        host_wolt_user=host,
        host_user=host_user,
        delivery_rate=delivery_rate,
    )


def build_rates_message(group_rate: GroupRate, order_id: str) -> str:
    """Markdown rates message. Wolt names are free text and get escaped; mentions are kept as links."""
    lines = [f"Rates for Wolt order ID {order_id} (including {group_rate.delivery_rate} NIS for delivery):"]

    for rate in group_rate.rates:
        wolt_name = escape_markdown(rate.wolt_name, version=1)
        user_id = wolt_name
        if rate.user is not None:
            user_id = f"{rate.user.mention} ({wolt_name})"
        lines.append(f"{user_id}: {rate.amount:.2f}")

    host = escape_markdown(group_rate.host_wolt_user, version=1)
    if group_rate.host_user is not None:
        host = group_rate.host_user.mention
    lines.append("")
    lines.append(f"Pay to: {host}")

    if group_rate.host_user is not None and group_rate.host_user.payment_preferences:
        payments = ", ".join(str(method) for method in group_rate.host_user.payment_preferences)
        lines.append(f"Preferred payments methods (in order): {payments}")

    return "\n".join(lines) + "\n"
