"""
Tests for account management and the ledger
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from game_bank.accounts import Account, AccountManager
from game_bank.errors import (
    AccountBlocked, AccountNotFound, HandleTaken, InsufficientFundsError,
    InvalidAmount, ValidationError
)
from game_bank.ledger import Ledger, Operation
from game_bank.storage import InMemoryStorage


class TestAccountManager:
    """Account creation and administration"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.ledger = Ledger(self.storage)
        self.account_manager = AccountManager(self.storage, self.ledger)

    def test_create_account(self):
        account = self.account_manager.create_account("alice", initial_balance=Decimal("500"))

        assert account.handle == "alice"
        assert account.balance == Decimal("500.00")
        assert account.loyalty_points == 0
        assert not account.has_deposit
        assert not account.is_blocked

        loaded = self.account_manager.get_account(account.id)
        assert loaded.balance == Decimal("500.00")
        assert loaded.created_at == account.created_at

    def test_opening_balance_is_recorded(self):
        account = self.account_manager.create_account("alice", initial_balance=Decimal("250"))
        entries = self.ledger.get_entries_for_account(account.id)

        assert len(entries) == 1
        assert entries[0].action == "Opening balance"
        assert entries[0].signed_amount == Decimal("250.00")

    def test_zero_opening_balance_writes_no_entry(self):
        account = self.account_manager.create_account("bob")
        assert self.ledger.get_entries_for_account(account.id) == []

    def test_handle_must_be_unique(self):
        self.account_manager.create_account("alice")
        with pytest.raises(HandleTaken):
            self.account_manager.create_account("alice")

    def test_handle_cannot_be_empty(self):
        with pytest.raises(ValidationError):
            self.account_manager.create_account("   ")

    def test_negative_opening_balance_rejected(self):
        with pytest.raises(InvalidAmount):
            self.account_manager.create_account("alice", initial_balance=Decimal("-1"))
        assert self.account_manager.list_accounts() == []

    def test_lookup_by_handle(self):
        account = self.account_manager.create_account("carol")
        assert self.account_manager.get_account_by_handle("carol").id == account.id
        assert self.account_manager.get_account_by_handle("nobody") is None

    def test_require_account_not_found(self):
        with pytest.raises(AccountNotFound):
            self.account_manager.require_account("missing")

    def test_blocked_account_cannot_initiate(self):
        account = self.account_manager.create_account("mallory")
        self.account_manager.set_blocked(account.id, True)

        with pytest.raises(AccountBlocked):
            self.account_manager.require_active_account(account.id)

        self.account_manager.set_blocked(account.id, False)
        assert self.account_manager.require_active_account(account.id).id == account.id

    def test_assign_team(self):
        account = self.account_manager.create_account("dave")
        updated = self.account_manager.assign_team(account.id, "red")
        assert updated.team_id == "red"
        assert self.account_manager.get_account(account.id).team_id == "red"

    def test_total_balance(self):
        self.account_manager.create_account("a", initial_balance=Decimal("10"))
        self.account_manager.create_account("b", initial_balance=Decimal("15.50"))
        assert self.account_manager.total_balance() == Decimal("25.50")


class TestAccountRecord:
    """Invariants held by the Account dataclass"""

    def _account(self, **kwargs):
        now = datetime.now(timezone.utc)
        return Account(id="a1", created_at=now, updated_at=now, handle="alice", **kwargs)

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            self._account(balance=Decimal("-0.01"))

    def test_half_set_deposit_rejected(self):
        with pytest.raises(ValueError):
            self._account(deposit_amount=Decimal("10"))

    def test_debit_checks_funds(self):
        account = self._account(balance=Decimal("5"))
        with pytest.raises(InsufficientFundsError):
            account.debit(Decimal("5.01"))
        account.debit(Decimal("5"))
        assert account.balance == Decimal("0.00")

    def test_spend_points_checks_points(self):
        account = self._account(loyalty_points=3)
        with pytest.raises(InsufficientFundsError):
            account.spend_points(4)
        account.spend_points(3)
        assert account.loyalty_points == 0

    def test_round_trip_through_storage_dict(self):
        account = self._account(
            balance=Decimal("12.34"),
            deposit_amount=Decimal("100.00"),
            deposit_maturity=datetime(2026, 1, 2, tzinfo=timezone.utc),
            team_id="blue"
        )
        restored = Account.from_dict(account.to_dict())
        assert restored == account


class TestLedger:
    """Append-only ledger entries"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.ledger = Ledger(self.storage)

    def test_entries_grouped_by_operation(self):
        operation = Operation("transfer", datetime.now(timezone.utc))
        self.ledger.record(operation, "a", "Transfer out", Decimal("40"), False)
        self.ledger.record(operation, "b", "Transfer in", Decimal("40"), True)

        entries = self.ledger.get_entries_for_operation(operation.id)
        assert len(entries) == 2
        assert self.ledger.net_amount(operation.id) == Decimal("0.00")

    def test_history_is_newest_first(self):
        first = Operation("first", datetime(2026, 1, 1, tzinfo=timezone.utc))
        second = Operation("second", datetime(2026, 1, 2, tzinfo=timezone.utc))
        self.ledger.record(first, "a", "Old", Decimal("1"), True)
        self.ledger.record(second, "a", "New", Decimal("2"), True)

        history = self.ledger.get_entries_for_account("a")
        assert [entry.action for entry in history] == ["New", "Old"]
        assert len(self.ledger.get_entries_for_account("a", limit=1)) == 1
        assert self.ledger.get_entries_for_account("a", limit=0) == []

    def test_negative_entry_rejected(self):
        operation = Operation("bad", datetime.now(timezone.utc))
        with pytest.raises(ValueError):
            self.ledger.record(operation, "a", "Bad", Decimal("-1"), True)
