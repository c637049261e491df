# -*- coding: utf-8 -*-
# Wolt Rates Bot - Telegram webhook entry point

# =============================================================================
# MAIN WORKFLOW OVERVIEW
# =============================================================================
# Wolt group order link posted in a group → bot joins the order → host closes
# the order → bot replies with the rate per participant → participants react
# on the rates message when they paid → bot follows the order to delivery
#
# The webhook only parses updates; all order handling runs on a background
# event loop thread (see run_async).
# =============================================================================

import os
import asyncio
import logging
import threading
from flask import Flask, request, jsonify

import utils
from debts import DebtTracker
from links import LinksRequest, extract_links
from order_session import now
from redis_state import OrderStore
from service import Service, ServiceConfig
from users import UserDirectory
from wolt import WoltClient

logger = logging.getLogger(__name__)

BOT_TOKEN = utils.BOT_TOKEN

# --- FLASK APP SETUP ---
app = Flask(__name__)

# --- SERVICE WIRING ---
service = Service(
    cfg=ServiceConfig.from_env(),
    provider=WoltClient(),
    transport=utils.TelegramTransport(),
    users=UserDirectory.from_config(utils.USERS),
    order_store=OrderStore(),
    debts=DebtTracker(),
)

# Event loop for async operations, run in a separate thread
loop = asyncio.new_event_loop()


def run_async(coro):
    """Run async function in background thread."""
    future = asyncio.run_coroutine_threadsafe(coro, loop)
    future.add_done_callback(_log_failure)
    return future


def _log_failure(future):
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"❌ Order handling failed: {exc!r}")


# --- WEBHOOK ENDPOINTS ---
@app.route("/", methods=["GET"])
def health_check():
    """Health check endpoint for monitoring"""
    return jsonify({
        "status": "healthy",
        "service": "wolt-rates-bot",
        "orders_in_progress": len(service.registry),
        "timestamp": now().isoformat()
    }), 200


# --- TELEGRAM WEBHOOK ---
# Updates of type "message_reaction" are only delivered when the webhook is
# registered with allowed_updates including it and the bot is a group admin.
@app.route(f"/{BOT_TOKEN}", methods=["POST"])
def telegram_webhook():
    """Handle Telegram webhooks"""
    try:
        upd = request.get_json(force=True)
        if not upd:
            return "OK"

        logger.info(f"=== INCOMING UPDATE {upd.get('update_id')} ===")

        msg = upd.get("message") or upd.get("channel_post")
        if msg:
            links = extract_links(msg)
            if links:
                req = LinksRequest(
                    channel=msg["chat"]["id"],
                    message_id=msg["message_id"],
                    links=links,
                )
                logger.info(f"Links in chat {req.channel} message {req.message_id}: {[link.url for link in links]}")
                run_async(service.handle_link_message(req))
            return "OK"

        reaction = upd.get("message_reaction")
        if reaction:
            user = reaction.get("user") or {}
            old = {r.get("emoji") for r in reaction.get("old_reaction", []) if r.get("type") == "emoji"}
            for r in reaction.get("new_reaction", []):
                if r.get("type") != "emoji" or r.get("emoji") in old or not user.get("id"):
                    continue
                run_async(service.handle_reaction(
                    reaction["chat"]["id"], reaction["message_id"], user["id"], r["emoji"]))
        return "OK"

    except Exception as e:
        logger.error(f"Telegram webhook error: {e}")
        return jsonify({"error": "Internal server error"}), 500


# --- APPLICATION ENTRY POINT ---
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 10000))
    logger.info(f"Starting Wolt rates bot on port {port}")

    # Start the event loop in a separate thread
    def run_event_loop():
        asyncio.set_event_loop(loop)
        loop.run_forever()

    loop_thread = threading.Thread(target=run_event_loop)
    loop_thread.daemon = True
    loop_thread.start()

    app.run(host="0.0.0.0", port=port, debug=False)
