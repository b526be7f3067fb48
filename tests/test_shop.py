"""
Tests for the shop and checkout
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from game_bank.api.system import BankSystem
from game_bank.config import GameBankConfig
from game_bank.errors import (
    EmptyCart, InsufficientFundsError, InsufficientStockError, InvalidAmount,
    InvalidQuantity, ItemNotFound
)
from game_bank.notifications import InMemoryNotificationSink
from game_bank.shop import CartLine, merge_cart
from game_bank.storage import InMemoryStorage


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestCheckout:
    """Checkout of a multi-line cart"""

    def setup_method(self):
        self.system = BankSystem(
            storage=InMemoryStorage(),
            config=GameBankConfig(database_url="memory://", settlement_enabled=False),
            notification_sink=InMemoryNotificationSink()
        )
        self.system.transaction_processor.clock = lambda: T0
        self.processor = self.system.transaction_processor
        self.shop = self.system.shop_manager

        self.buyer = self.system.account_manager.create_account(
            "buyer", initial_balance=Decimal("1000"), loyalty_points=60
        )
        self.sword = self.shop.upsert_item("Sword", Decimal("150"), 5, discount_price=Decimal("120"))
        self.potion = self.shop.upsert_item("Potion", Decimal("30"), 10)
        self.scarce = self.shop.upsert_item("Crown", Decimal("10"), 3)

    def test_checkout_merges_lines_and_uses_discount(self):
        cart = [CartLine(self.sword.id, 2), CartLine(self.potion.id, 1), CartLine(self.sword.id, 1)]
        result = self.processor.checkout(self.buyer.id, cart, loyalty_points_to_spend=50)

        assert result.subtotal == Decimal("390.00")
        assert result.total_charged == Decimal("340.00")
        assert result.points_spent == 50
        assert result.points_earned == 3

        buyer = self.system.account_manager.get_account(self.buyer.id)
        assert buyer.balance == Decimal("660.00")
        assert buyer.loyalty_points == 13

        sword = self.shop.get_item(self.sword.id)
        potion = self.shop.get_item(self.potion.id)
        assert (sword.quantity, sword.popularity) == (2, 3)
        assert (potion.quantity, potion.popularity) == (9, 1)

    def test_checkout_writes_one_entry_with_line_items(self):
        result = self.processor.checkout(self.buyer.id, [CartLine(self.potion.id, 2)])

        entries = self.system.ledger.get_entries_for_operation(result.operation_id)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == "Shop purchase"
        assert entry.signed_amount == Decimal("-60.00")
        assert entry.details["subtotal"] == "60.00"
        assert entry.details["items"][0]["item_name"] == "Potion"
        assert entry.details["items"][0]["quantity"] == 2

    def test_out_of_stock_changes_nothing(self):
        entries_before = self.system.ledger.count()

        with pytest.raises(InsufficientStockError):
            self.processor.checkout(
                self.buyer.id, [CartLine(self.potion.id, 1), CartLine(self.scarce.id, 5)]
            )

        assert self.shop.get_item(self.scarce.id).quantity == 3
        assert self.shop.get_item(self.potion.id).quantity == 10
        assert self.system.account_manager.get_account(self.buyer.id).balance == Decimal("1000.00")
        assert self.system.ledger.count() == entries_before

    def test_merged_lines_checked_against_stock(self):
        with pytest.raises(InsufficientStockError):
            self.processor.checkout(
                self.buyer.id, [CartLine(self.scarce.id, 2), CartLine(self.scarce.id, 2)]
            )

    def test_empty_cart(self):
        with pytest.raises(EmptyCart):
            self.processor.checkout(self.buyer.id, [])

    def test_non_positive_quantity(self):
        with pytest.raises(InvalidQuantity):
            self.processor.checkout(self.buyer.id, [CartLine(self.potion.id, 0)])

    def test_unknown_item(self):
        with pytest.raises(ItemNotFound):
            self.processor.checkout(self.buyer.id, [CartLine("nope", 1)])

    def test_points_cannot_exceed_subtotal(self):
        with pytest.raises(InvalidAmount):
            self.processor.checkout(self.buyer.id, [CartLine(self.scarce.id, 1)], loyalty_points_to_spend=11)

    def test_negative_points_rejected(self):
        with pytest.raises(InvalidAmount):
            self.processor.checkout(self.buyer.id, [CartLine(self.scarce.id, 1)], loyalty_points_to_spend=-1)

    def test_not_enough_points(self):
        with pytest.raises(InsufficientFundsError):
            self.processor.checkout(self.buyer.id, [CartLine(self.sword.id, 1)], loyalty_points_to_spend=61)

    def test_not_enough_balance(self):
        poor = self.system.account_manager.create_account("poor", initial_balance=Decimal("20"))
        with pytest.raises(InsufficientFundsError):
            self.processor.checkout(poor.id, [CartLine(self.potion.id, 1)])
        assert self.shop.get_item(self.potion.id).quantity == 10

    def test_fully_paid_with_points(self):
        result = self.processor.checkout(
            self.buyer.id, [CartLine(self.scarce.id, 1)], loyalty_points_to_spend=10
        )
        assert result.total_charged == Decimal("0.00")
        buyer = self.system.account_manager.get_account(self.buyer.id)
        assert buyer.balance == Decimal("1000.00")
        assert buyer.loyalty_points == 50


class TestShopItems:

    def test_discount_ignored_when_not_lower(self):
        system = BankSystem(
            storage=InMemoryStorage(),
            config=GameBankConfig(database_url="memory://", settlement_enabled=False),
            notification_sink=InMemoryNotificationSink()
        )
        item = system.shop_manager.upsert_item("Shield", Decimal("40"), 1, discount_price=Decimal("45"))
        assert item.unit_price == Decimal("40.00")

    def test_upsert_keeps_popularity(self):
        system = BankSystem(
            storage=InMemoryStorage(),
            config=GameBankConfig(database_url="memory://", settlement_enabled=False),
            notification_sink=InMemoryNotificationSink()
        )
        shop = system.shop_manager
        buyer = system.account_manager.create_account("buyer", initial_balance=Decimal("100"))
        item = shop.upsert_item("Bow", Decimal("10"), 2)
        system.transaction_processor.checkout(buyer.id, [CartLine(item.id, 2)])

        restocked = shop.upsert_item("Bow", Decimal("12"), 10, item_id=item.id)
        assert restocked.popularity == 2
        assert restocked.quantity == 10
        assert len(shop.list_items()) == 1

    def test_merge_cart(self):
        merged = merge_cart([CartLine("a", 1), CartLine("b", 2), CartLine("a", 3)])
        assert merged == {"a": 4, "b": 2}
