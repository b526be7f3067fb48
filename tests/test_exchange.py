"""
Tests for exchange trading and price drift
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from game_bank.api.system import BankSystem
from game_bank.config import GameBankConfig
from game_bank.errors import (
    AssetNotFound, InsufficientFundsError, InsufficientHoldingsError,
    InvalidQuantity, ValidationError
)
from game_bank.exchange import AssetCategory, TradeDirection
from game_bank.ledger import Operation
from game_bank.notifications import InMemoryNotificationSink
from game_bank.storage import InMemoryStorage


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedRandom:
    """Stands in for random.Random with a fixed draw"""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class TestTrading:

    def setup_method(self):
        self.system = BankSystem(
            storage=InMemoryStorage(),
            config=GameBankConfig(database_url="memory://", settlement_enabled=False),
            notification_sink=InMemoryNotificationSink()
        )
        self.system.transaction_processor.clock = lambda: T0
        self.processor = self.system.transaction_processor
        self.exchange = self.system.exchange_manager

        self.trader = self.system.account_manager.create_account("trader", initial_balance=Decimal("100"))
        self.exchange.register_asset("ACME", "Acme Corp", AssetCategory.COMPANY, Decimal("10"))
        self.exchange.register_asset("BTC", "Bitcoin", AssetCategory.CRYPTO, Decimal("120"))

    def _balance(self):
        return self.system.account_manager.get_account(self.trader.id).balance

    def test_buy_and_sell(self):
        bought = self.processor.trade_asset(self.trader.id, "ACME", "3", "buy")

        assert bought.total == Decimal("30.00")
        assert bought.position == Decimal("3")
        assert self._balance() == Decimal("70.00")

        sold = self.processor.trade_asset(self.trader.id, "ACME", "2", TradeDirection.SELL)

        assert sold.total == Decimal("20.00")
        assert sold.position == Decimal("1")
        assert self._balance() == Decimal("90.00")
        assert self.exchange.get_position(self.trader.id, "ACME").quantity == Decimal("1")

    def test_trade_ledger_entry(self):
        result = self.processor.trade_asset(self.trader.id, "ACME", "3", "buy")

        entries = self.system.ledger.get_entries_for_operation(result.operation_id)
        assert len(entries) == 1
        assert entries[0].action == "Buy company"
        assert entries[0].signed_amount == Decimal("-30.00")
        assert entries[0].details["direction"] == "buy"
        assert entries[0].details["asset_id"] == "ACME"
        assert entries[0].details["quantity"] == "3"
        assert entries[0].details["total"] == "30.00"

    def test_fractional_crypto(self):
        result = self.processor.trade_asset(self.trader.id, "BTC", "0.25", "buy")
        assert result.total == Decimal("30.00")
        assert self.exchange.get_position(self.trader.id, "BTC").quantity == Decimal("0.25")

    def test_sell_more_than_held(self):
        self.processor.trade_asset(self.trader.id, "ACME", "2", "buy")
        with pytest.raises(InsufficientHoldingsError):
            self.processor.trade_asset(self.trader.id, "ACME", "3", "sell")
        assert self._balance() == Decimal("80.00")

    def test_sell_without_position(self):
        with pytest.raises(InsufficientHoldingsError):
            self.processor.trade_asset(self.trader.id, "ACME", "1", "sell")
        assert self.exchange.get_position(self.trader.id, "ACME") is None

    def test_buy_without_funds(self):
        with pytest.raises(InsufficientFundsError):
            self.processor.trade_asset(self.trader.id, "ACME", "11", "buy")
        assert self.exchange.get_position(self.trader.id, "ACME") is None

    @pytest.mark.parametrize("quantity", ["0", "-1", "lots"])
    def test_invalid_quantity(self, quantity):
        with pytest.raises(InvalidQuantity):
            self.processor.trade_asset(self.trader.id, "ACME", quantity, "buy")

    def test_total_below_one_cent(self):
        with pytest.raises(InvalidQuantity):
            self.processor.trade_asset(self.trader.id, "ACME", "0.0001", "buy")

    def test_rounding_favours_bank(self):
        self.exchange.register_asset("HALF", "Half Cent", AssetCategory.COMPANY, Decimal("1.005"))

        bought = self.processor.trade_asset(self.trader.id, "HALF", "1", "buy")
        sold = self.processor.trade_asset(self.trader.id, "HALF", "1", "sell")

        assert bought.total == Decimal("1.01")
        assert sold.total == Decimal("1.00")

    def test_split_round_trips_never_create_money(self):
        self.exchange.register_asset("HALF", "Half Cent", AssetCategory.COMPANY, Decimal("1.005"))

        for _ in range(20):
            self.processor.trade_asset(self.trader.id, "HALF", "2", "buy")
            self.processor.trade_asset(self.trader.id, "HALF", "1", "sell")
            self.processor.trade_asset(self.trader.id, "HALF", "1", "sell")

        assert self._balance() <= Decimal("100.00")
        assert self.exchange.get_position(self.trader.id, "HALF").quantity == Decimal("0")

    def test_unknown_direction(self):
        with pytest.raises(ValidationError):
            self.processor.trade_asset(self.trader.id, "ACME", "1", "hold")

    def test_unknown_asset(self):
        with pytest.raises(AssetNotFound):
            self.processor.trade_asset(self.trader.id, "NOPE", "1", "buy")

    def test_portfolio_lists_open_positions(self):
        self.processor.trade_asset(self.trader.id, "ACME", "2", "buy")
        self.processor.trade_asset(self.trader.id, "BTC", "0.1", "buy")
        self.processor.trade_asset(self.trader.id, "ACME", "2", "sell")

        portfolio = self.exchange.get_portfolio(self.trader.id)
        assert [p.asset_id for p in portfolio] == ["BTC"]

    def test_ticker_normalized(self):
        asset = self.exchange.register_asset(" glob ", "Globex", AssetCategory.COMPANY, Decimal("1"))
        assert asset.ticker == "GLOB"


class TestPriceDrift:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.system = BankSystem(
            storage=self.storage,
            config=GameBankConfig(database_url="memory://", settlement_enabled=False),
            notification_sink=InMemoryNotificationSink()
        )
        self.exchange = self.system.exchange_manager
        self.exchange.register_asset("ACME", "Acme Corp", AssetCategory.COMPANY, Decimal("100"))

    def _drift(self, value, **kwargs):
        with self.storage.atomic():
            return self.exchange.drift_prices(Operation("drift", T0), FixedRandom(value), **kwargs)

    def test_neutral_draw_keeps_price(self):
        # u = 0.49 is the centre of the biased walk
        changes = self._drift(0.49)
        assert changes[0].new_price == Decimal("100.0000")

    def test_top_draw_moves_up_about_one_percent(self):
        self._drift(0.99)
        assert self.exchange.get_asset("ACME").price == Decimal("101.0000")

    def test_bottom_draw_moves_down_about_one_percent(self):
        self._drift(0.0)
        assert self.exchange.get_asset("ACME").price == Decimal("99.0200")

    def test_magnitude_scales_change(self):
        self._drift(0.99, magnitude=5.0, bias=0.01)
        assert self.exchange.get_asset("ACME").price == Decimal("105.0000")

    def test_price_floor(self):
        self.exchange.register_asset("PENNY", "Penny Co", AssetCategory.COMPANY, Decimal("0.01"))
        self._drift(0.0)
        assert self.exchange.get_asset("PENNY").price == Decimal("0.01")
