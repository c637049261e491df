# -*- coding: utf-8 -*-
# users.py - User directory loaded from the USERS environment variable

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class PaymentMethod(str, Enum):
    BIT = "Bit"
    PAYBOX = "PayBox"
    PEPPER_PAY = "Pepper Pay"
    BANK_TRANSFER = "Bank transfer"
    CASH = "Cash"

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, value: str) -> Optional["PaymentMethod"]:
        """Match by name or display text, case-insensitive."""
        normalized = value.strip().lower().replace("_", " ")
        for method in cls:
            if normalized in (method.value.lower(), method.name.lower().replace("_", " ")):
                return method
        return None


@dataclass(frozen=True)
class User:
    name: str
    transport_id: int
    payment_preferences: List[PaymentMethod] = field(default_factory=list)

    @property
    def mention(self) -> str:
        return f"[{self.name}](tg://user?id={self.transport_id})"


def parse_user(raw: Dict[str, Any]) -> User:
    """
    Build a User from one USERS entry:
    {"name": "Dana Levi", "telegram_id": 1234, "payment_preferences": ["bit", "paybox"]}
    """
    preferences = []
    for value in raw.get("payment_preferences", []):
        method = PaymentMethod.parse(value)
        if method is None:
            logger.warning(f"Unknown payment method {value!r} for user {raw.get('name')!r} - skipped")
            continue
        preferences.append(method)

    return User(
        name=raw["name"],
        transport_id=int(raw["telegram_id"]),
        payment_preferences=preferences,
    )


class UserDirectory:
    """Users matched by their exact Wolt display name, in configuration order."""

    def __init__(self, users: Sequence[User]):
        self._users = list(users)

    @classmethod
    def from_config(cls, raw_users: Sequence[Dict[str, Any]]) -> "UserDirectory":
        users = []
        for raw in raw_users:
            try:
                users.append(parse_user(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Invalid user entry {raw!r}: {e}")
        logger.info(f"Loaded {len(users)} users")
        return cls(users)

    def list_users(self, names: Sequence[str]) -> List[User]:
        wanted = set(names)
        return [user for user in self._users if user.name in wanted]
