"""
Tests for fixed-term deposits and their maturation
"""

import pytest
import random
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from game_bank.api.system import BankSystem
from game_bank.config import GameBankConfig
from game_bank.errors import DepositAlreadyActive, InsufficientFundsError, InvalidAmount
from game_bank.notifications import InMemoryNotificationSink
from game_bank.storage import InMemoryStorage


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestDeposits:

    def setup_method(self):
        self.sink = InMemoryNotificationSink()
        self.system = BankSystem(
            storage=InMemoryStorage(),
            config=GameBankConfig(database_url="memory://", settlement_enabled=False),
            notification_sink=self.sink,
            rng=random.Random(1)
        )
        self.system.transaction_processor.clock = lambda: T0
        self.processor = self.system.transaction_processor
        self.scheduler = self.system.settlement_scheduler
        self.saver = self.system.account_manager.create_account("saver", initial_balance=Decimal("1500"))

    def _saver(self):
        return self.system.account_manager.get_account(self.saver.id)

    def test_open_deposit(self):
        receipt = self.processor.open_deposit(self.saver.id, "1000")

        assert receipt.maturity == T0 + timedelta(hours=24)
        saver = self._saver()
        assert saver.balance == Decimal("500.00")
        assert saver.deposit_amount == Decimal("1000")
        assert saver.deposit_maturity == T0 + timedelta(hours=24)

        entries = self.system.ledger.get_entries_for_operation(receipt.operation_id)
        assert [(e.action, e.signed_amount) for e in entries] == [("Deposit opened", Decimal("-1000.00"))]

    def test_deposit_pays_ten_percent_at_maturity(self):
        self.processor.open_deposit(self.saver.id, "1000")

        report = self.scheduler.run_tick(T0 + timedelta(hours=24))

        saver = self._saver()
        assert saver.balance == Decimal("1600.00")
        assert saver.deposit_amount is None
        assert saver.deposit_maturity is None
        assert saver.deposit_earnings == Decimal("100.00")
        assert len(report.matured_deposits) == 1
        assert report.matured_deposits[0].payout == Decimal("1100.00")
        assert report.matured_deposits[0].profit == Decimal("100.00")
        assert self.sink.messages_for(self.saver.id) == ["Deposit matured! You received 1,100.00."]

    def test_deposit_not_paid_before_maturity(self):
        self.processor.open_deposit(self.saver.id, "1000")

        report = self.scheduler.run_tick(T0 + timedelta(hours=23, minutes=59))

        assert report.matured_deposits == []
        assert self._saver().balance == Decimal("500.00")
        assert self._saver().has_deposit

    def test_maturation_is_idempotent(self):
        self.processor.open_deposit(self.saver.id, "1000")
        self.scheduler.run_tick(T0 + timedelta(hours=25))
        self.scheduler.run_tick(T0 + timedelta(hours=26))
        self.scheduler.run_tick(T0 + timedelta(days=3))

        assert self._saver().balance == Decimal("1600.00")
        assert self._saver().deposit_earnings == Decimal("100.00")
        assert len(self.sink.messages_for(self.saver.id)) == 1

    def test_payout_ledger_entry(self):
        self.processor.open_deposit(self.saver.id, "1000")
        report = self.scheduler.run_tick(T0 + timedelta(hours=24))

        entries = self.system.ledger.get_entries_for_operation(report.operation_id)
        assert len(entries) == 1
        assert entries[0].action == "Deposit returned"
        assert entries[0].signed_amount == Decimal("1100.00")
        assert entries[0].comment == "+100.00 profit"

    def test_only_one_active_deposit(self):
        self.processor.open_deposit(self.saver.id, "100")
        with pytest.raises(DepositAlreadyActive):
            self.processor.open_deposit(self.saver.id, "100")
        assert self._saver().balance == Decimal("1400.00")

    def test_new_deposit_allowed_after_maturity(self):
        self.processor.open_deposit(self.saver.id, "100")
        self.scheduler.run_tick(T0 + timedelta(hours=24))
        self.processor.open_deposit(self.saver.id, "100")
        assert self._saver().deposit_amount == Decimal("100")

    def test_insufficient_funds(self):
        with pytest.raises(InsufficientFundsError):
            self.processor.open_deposit(self.saver.id, "1500.01")
        assert not self._saver().has_deposit

    def test_invalid_amount(self):
        with pytest.raises(InvalidAmount):
            self.processor.open_deposit(self.saver.id, "0")

    def test_configured_term_and_rate(self):
        system = BankSystem(
            storage=InMemoryStorage(),
            config=GameBankConfig(
                database_url="memory://", settlement_enabled=False,
                deposit_term_hours=2, deposit_rate="0.25"
            ),
            notification_sink=InMemoryNotificationSink()
        )
        system.transaction_processor.clock = lambda: T0
        account = system.account_manager.create_account("quick", initial_balance=Decimal("80"))

        system.transaction_processor.open_deposit(account.id, "80")
        system.settlement_scheduler.run_tick(T0 + timedelta(hours=2))

        assert system.account_manager.get_account(account.id).balance == Decimal("100.00")
