# -*- coding: utf-8 -*-
# utils.py - Shared configuration, logging and Telegram helpers for the Wolt rates bot

import os
import json
import asyncio
import logging
from typing import Dict, Any, List, Optional
from telegram import Bot, LinkPreviewOptions, ReactionTypeEmoji, ReplyParameters
from telegram.constants import ParseMode
from telegram.request import HTTPXRequest

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# --- ENVIRONMENT VARIABLES ---
BOT_TOKEN = os.environ.get("BOT_TOKEN", "")
WOLT_DOMAIN = os.environ.get("WOLT_DOMAIN", "wolt.com")
WOLT_API_BASE = os.environ.get("WOLT_API_BASE", "https://consumer-api.wolt.com/order-xp/v1")
WOLT_AUTH_TOKEN = os.environ.get("WOLT_AUTH_TOKEN", "")
USERS: List[Dict[str, Any]] = json.loads(os.environ.get("USERS", "[]"))

# --- REACTIONS ---
# Telegram only accepts reactions from its fixed emoji set
JOINED_ORDER_EMOJI = os.environ.get("JOINED_ORDER_EMOJI", "👀")
MARK_AS_PAID_REACTION = os.environ.get("MARK_AS_PAID_REACTION", "👌")
HOST_REMOVE_DEBTS_REACTION = os.environ.get("HOST_REMOVE_DEBTS_REACTION", "🕊")

# --- TIMING (seconds) ---
TIMEOUT_FOR_READY = float(os.environ.get("TIMEOUT_FOR_READY", "3600"))
ORDER_DONE_TIMEOUT = float(os.environ.get("ORDER_DONE_TIMEOUT", "7200"))
WAIT_BETWEEN_STATUS_CHECK = float(os.environ.get("WAIT_BETWEEN_STATUS_CHECK", "60"))
VENUE_CHECK_INTERVAL = float(os.environ.get("VENUE_CHECK_INTERVAL", "30"))

# Orders are not joined from this local time on (e.g. "18:00"), empty disables the cutoff
DONT_JOIN_AFTER = os.environ.get("DONT_JOIN_AFTER", "")
DONT_JOIN_AFTER_TZ = os.environ.get("DONT_JOIN_AFTER_TZ", "")

# --- TELEGRAM BOT CONFIGURATION ---
_bot: Optional[Bot] = None


def get_bot() -> Bot:
    """Get or create the Telegram Bot instance."""
    global _bot

    if _bot is None:
        # Larger pool to prevent pool timeout when many orders are tracked at once
        request_cfg = HTTPXRequest(
            connection_pool_size=32,
            pool_timeout=30.0,
            read_timeout=30.0,
            write_timeout=30.0,
            connect_timeout=15.0,
        )
        _bot = Bot(token=BOT_TOKEN, request=request_cfg)
    return _bot


# --- ASYNC UTILITY FUNCTIONS ---
async def safe_send_message(chat_id: int, text: str, reply_to_message_id: Optional[int] = None, parse_mode=ParseMode.MARKDOWN):
    """Send message with error handling and retry logic"""
    reply_parameters = None
    if reply_to_message_id:
        reply_parameters = ReplyParameters(message_id=reply_to_message_id, allow_sending_without_reply=True)

    max_retries = 3
    for attempt in range(max_retries):
        try:
            logger.info(f"Send message attempt {attempt + 1}")
            return await get_bot().send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=parse_mode,
                reply_parameters=reply_parameters,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except Exception as e:
            logger.error(f"Send message attempt {attempt + 1} failed: {get_error_description(e)}")
            if attempt < max_retries - 1:
                await asyncio.sleep(2 ** attempt)
                continue
            else:
                logger.error(f"Failed to send message after {max_retries} attempts: {e}")
                raise


async def safe_edit_message(chat_id: int, message_id: int, text: str, parse_mode=ParseMode.MARKDOWN):
    """Edit message with error handling"""
    try:
        await get_bot().edit_message_text(
            chat_id=chat_id,
            message_id=message_id,
            text=text,
            parse_mode=parse_mode,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )
    except Exception as e:
        logger.error(f"Error editing message: {get_error_description(e)}")


async def safe_inform(transport, chat_id: int, text: str, reply_to_message_id: Optional[int] = None) -> Optional[int]:
    """Best-effort notice through the transport. Returns the message id, or None if sending failed."""
    try:
        return await transport.inform_event(chat_id, text, "", reply_to_message_id)
    except Exception as e:
        logger.error(f"Error informing chat {chat_id}: {get_error_description(e)}")
        return None


def get_error_description(error: Exception) -> str:
    """
    Get a human-readable short error description based on exception type.

    Converts technical Telegram API errors into short log-friendly messages.

    Examples:
        TimedOut → "Network timeout"
        NetworkError → "Network connection lost"
        RetryAfter → "Rate limit exceeded"
    """
    from telegram.error import TimedOut, NetworkError, RetryAfter, Forbidden, BadRequest, ChatMigrated

    error_name = type(error).__name__

    # Telegram-specific errors
    if isinstance(error, TimedOut):
        return "Network timeout"
    elif isinstance(error, RetryAfter):
        return f"Rate limit exceeded (retry in {error.retry_after}s)"
    elif isinstance(error, Forbidden):
        return "Bot blocked by user or insufficient permissions"
    elif isinstance(error, BadRequest):
        error_msg = str(error).lower()
        if "chat not found" in error_msg:
            return "Chat not found"
        elif "message to react not found" in error_msg:
            return "Message not found"
        elif "reaction_invalid" in error_msg:
            return "Reaction not allowed in this chat"
        elif "message is not modified" in error_msg:
            return "Message not modified"
        else:
            return f"Invalid request ({error_msg[:50]})"
    elif isinstance(error, ChatMigrated):
        return "Chat was migrated to supergroup"
    elif isinstance(error, NetworkError):
        return "Network connection lost"

    # Generic errors
    elif isinstance(error, ConnectionError):
        return "Connection error"
    elif isinstance(error, TimeoutError):
        return "Request timeout"

    # Fallback to exception name
    return f"{error_name}: {str(error)[:50]}"


class TelegramTransport:
    """
    Chat transport used by the order service.

    add_reaction and inform_event raise on failure; callers decide whether
    the failure is load-bearing.
    """

    async def add_reaction(self, chat_id: int, message_id: int, emoji: str) -> None:
        await get_bot().set_message_reaction(
            chat_id=chat_id,
            message_id=message_id,
            reaction=[ReactionTypeEmoji(emoji)],
        )

    async def inform_event(self, chat_id: int, text: str, reaction: str = "", reply_to_message_id: Optional[int] = None) -> int:
        """Send text as a reply and optionally react on it. Returns the published message id."""
        msg = await safe_send_message(chat_id, text, reply_to_message_id)
        if reaction:
            try:
                await self.add_reaction(chat_id, msg.message_id, reaction)
            except Exception as e:
                logger.error(f"Error adding reaction {reaction} to message {msg.message_id}: {get_error_description(e)}")
        return msg.message_id

    async def edit_event(self, chat_id: int, message_id: int, text: str) -> None:
        await safe_edit_message(chat_id, message_id, text)
