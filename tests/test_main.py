"""Tests for Telegram webhook parsing."""

from unittest.mock import MagicMock, patch

import pytest

import main
from links import Link, LinksRequest


@pytest.fixture
def client():
    main.app.config["TESTING"] = True
    return main.app.test_client()


@pytest.fixture
def service():
    service = MagicMock()
    service.registry = []
    with patch.object(main, "service", service), patch.object(main, "run_async") as run_async:
        service.run_async = run_async
        yield service


def post_update(client, update):
    return client.post(f"/{main.BOT_TOKEN}", json=update)


class TestTelegramWebhook:

    def test_message_with_wolt_link(self, client, service):
        update = {
            "update_id": 1,
            "message": {
                "message_id": 7,
                "chat": {"id": -100},
                "text": "https://wolt.com/group-order/ABC123/join",
                "entities": [{"type": "url", "offset": 0, "length": 40}],
            },
        }

        response = post_update(client, update)

        assert response.status_code == 200
        service.handle_link_message.assert_called_once_with(LinksRequest(
            channel=-100,
            message_id=7,
            links=[Link(domain="wolt.com", url="https://wolt.com/group-order/ABC123/join")],
        ))
        service.run_async.assert_called_once()

    def test_message_without_links(self, client, service):
        post_update(client, {"update_id": 2, "message": {"message_id": 8, "chat": {"id": -100}, "text": "hi"}})

        service.handle_link_message.assert_not_called()
        service.run_async.assert_not_called()

    def test_new_reactions_only(self, client, service):
        update = {
            "update_id": 3,
            "message_reaction": {
                "chat": {"id": -100},
                "message_id": 500,
                "user": {"id": 222},
                "old_reaction": [{"type": "emoji", "emoji": "👍"}],
                "new_reaction": [{"type": "emoji", "emoji": "👍"}, {"type": "emoji", "emoji": "👌"}],
            },
        }

        post_update(client, update)

        service.handle_reaction.assert_called_once_with(-100, 500, 222, "👌")

    def test_anonymous_reaction_ignored(self, client, service):
        update = {
            "update_id": 4,
            "message_reaction": {
                "chat": {"id": -100},
                "message_id": 500,
                "actor_chat": {"id": -100},
                "old_reaction": [],
                "new_reaction": [{"type": "emoji", "emoji": "👌"}],
            },
        }

        post_update(client, update)

        service.handle_reaction.assert_not_called()


def test_health_check(client, service):
    response = client.get("/")
    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"
