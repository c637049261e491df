"""Tests for the configured user directory."""

from users import PaymentMethod, User, UserDirectory


RAW_USERS = [
    {"name": "alice", "telegram_id": "111", "payment_preferences": ["bit", "Bank transfer", "bitcoin"]},
    {"name": "bob", "telegram_id": 222},
    {"name": "broken"},
    {"name": "alice", "telegram_id": 333},
]


class TestUserDirectory:

    def test_from_config_skips_invalid_entries(self):
        directory = UserDirectory.from_config(RAW_USERS)

        alice = directory.list_users(["alice"])[0]
        assert alice == User("alice", 111, [PaymentMethod.BIT, PaymentMethod.BANK_TRANSFER])
        assert directory.list_users(["broken"]) == []

    def test_list_users_keeps_configuration_order(self):
        directory = UserDirectory.from_config(RAW_USERS)

        assert [u.transport_id for u in directory.list_users(["alice"])] == [111, 333]
        assert [u.name for u in directory.list_users(["bob", "alice"])] == ["alice", "bob", "alice"]

    def test_exact_name_match(self):
        directory = UserDirectory.from_config(RAW_USERS)
        assert directory.list_users(["Alice"]) == []


class TestPaymentMethod:

    def test_parse(self):
        assert PaymentMethod.parse("PAYBOX") == PaymentMethod.PAYBOX
        assert PaymentMethod.parse("pepper_pay") == PaymentMethod.PEPPER_PAY
        assert PaymentMethod.parse("Pepper Pay") == PaymentMethod.PEPPER_PAY
        assert PaymentMethod.parse("venmo") is None

    def test_display_text(self):
        assert str(PaymentMethod.BANK_TRANSFER) == "Bank transfer"


def test_mention():
    assert User("alice", 111).mention == "[alice](tg://user?id=111)"
