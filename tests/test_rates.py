"""Tests for the rate split and the published rates message."""

import logging
from unittest.mock import MagicMock

import pytest

from rates import GroupRate, Rate, build_group_rates, build_rates_message
from users import PaymentMethod, User, UserDirectory

ALICE = User(name="alice", transport_id=111, payment_preferences=[PaymentMethod.BIT, PaymentMethod.PAYBOX])
BOB = User(name="bob", transport_id=222)


@pytest.fixture
def users():
    return UserDirectory([ALICE, BOB])


@pytest.fixture
def empty_users():
    return UserDirectory([])


class TestBuildGroupRates:

    def test_delivery_split_evenly(self, users):
        group_rate = build_group_rates({"bob": 20.0, "alice": 10.0}, "alice", 6, users)

        assert [r.wolt_name for r in group_rate.rates] == ["alice", "bob"]
        assert [r.amount for r in group_rate.rates] == [13.0, 23.0]
        assert group_rate.delivery_rate == 6
        assert group_rate.host_wolt_user == "alice"
        assert group_rate.host_user == ALICE

    def test_host_added_when_missing(self, empty_users):
        group_rate = build_group_rates({"bob": 15.0}, "alice", 0, empty_users)

        assert group_rate.rates == (
            Rate(wolt_name="alice", user=None, amount=0.0),
            Rate(wolt_name="bob", user=None, amount=15.0),
        )
        assert group_rate.host_user is None

    def test_input_not_mutated(self, users):
        rate_by_person = {"bob": 15.0}
        build_group_rates(rate_by_person, "alice", 10, users)
        assert rate_by_person == {"bob": 15.0}

    def test_idempotent(self, users):
        rate_by_person = {"zoe": 7.5, "bob": 20.0, "alice": 10.0, "carol": 3.3}
        first = build_group_rates(rate_by_person, "carol", 17, users)
        second = build_group_rates(rate_by_person, "carol", 17, users)

        assert first == second
        assert build_rates_message(first, "ABC123") == build_rates_message(second, "ABC123")

    def test_float_division_of_delivery(self, empty_users):
        group_rate = build_group_rates({"a": 0.0, "b": 0.0, "c": 0.0}, "a", 10, empty_users)
        for rate in group_rate.rates:
            assert rate.amount == pytest.approx(10 / 3)

    def test_unknown_user_logged(self, users, caplog):
        with caplog.at_level(logging.WARNING, logger="rates"):
            group_rate = build_group_rates({"dana": 12.0}, "alice", 0, users)

        dana = [r for r in group_rate.rates if r.wolt_name == "dana"][0]
        assert dana.user is None
        assert "User not found dana" in caplog.text

    def test_ambiguous_user_takes_first(self, caplog):
        first = User(name="dana", transport_id=1)
        second = User(name="dana", transport_id=2)
        directory = UserDirectory([first, second])

        with caplog.at_level(logging.WARNING, logger="rates"):
            group_rate = build_group_rates({"dana": 12.0}, "dana", 0, directory)

        assert group_rate.rates[0].user == first
        assert group_rate.host_user == first
        assert "More than one user for dana" in caplog.text

    def test_directory_error_leaves_unresolved(self):
        directory = MagicMock()
        directory.list_users.side_effect = RuntimeError("boom")

        group_rate = build_group_rates({"bob": 5.0}, "bob", 0, directory)

        assert group_rate.rates[0].user is None
        assert group_rate.host_user is None

    def test_group_rate_is_immutable(self, users):
        group_rate = build_group_rates({"bob": 5.0}, "bob", 0, users)
        assert isinstance(group_rate.rates, tuple)
        with pytest.raises(AttributeError):
            group_rate.delivery_rate = 3


class TestBuildRatesMessage:

    def test_resolved_users_with_payment_preferences(self, users):
        group_rate = build_group_rates({"alice": 10.0, "bob": 20.0}, "alice", 6, users)

        assert build_rates_message(group_rate, "ABC123") == (
            "Rates for Wolt order ID ABC123 (including 6 NIS for delivery):\n"
            "[alice](tg://user?id=111) (alice): 13.00\n"
            "[bob](tg://user?id=222) (bob): 23.00\n"
            "\n"
            "Pay to: [alice](tg://user?id=111)\n"
            "Preferred payments methods (in order): Bit, PayBox\n"
        )

    def test_unresolved_users(self):
        group_rate = GroupRate(
            rates=(Rate("alice", None, 0.0), Rate("bob", None, 15.0)),
            host_wolt_user="alice",
            host_user=None,
            delivery_rate=0,
        )

        assert build_rates_message(group_rate, "XYZ") == (
            "Rates for Wolt order ID XYZ (including 0 NIS for delivery):\n"
            "alice: 0.00\n"
            "bob: 15.00\n"
            "\n"
            "Pay to: alice\n"
        )

    def test_host_without_payment_preferences(self, users):
        group_rate = build_group_rates({"bob": 9.999}, "bob", 0, users)
        message = build_rates_message(group_rate, "Q1")

        assert "[bob](tg://user?id=222) (bob): 10.00\n" in message
        assert message.endswith("Pay to: [bob](tg://user?id=222)\n")
        assert "Preferred payments methods" not in message

    def test_markdown_in_wolt_names_is_escaped(self, users):
        group_rate = GroupRate(
            rates=(Rate("bob_x", BOB, 12.0), Rate("dana_l", None, 5.0), Rate("*zoe*", None, 3.0)),
            host_wolt_user="dana_l",
            host_user=None,
            delivery_rate=0,
        )

        assert build_rates_message(group_rate, "ABC123") == (
            "Rates for Wolt order ID ABC123 (including 0 NIS for delivery):\n"
            "[bob](tg://user?id=222) (bob\\_x): 12.00\n"
            "dana\\_l: 5.00\n"
            "\\*zoe\\*: 3.00\n"
            "\n"
            "Pay to: dana\\_l\n"
        )
