"""
Account Management Module

Player accounts: balance, loyalty points, the deposit sub-state, and the
administrative flags. Accounts are created by registration or an
administrator and are never physically deleted.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import uuid

from .errors import (
    AccountNotFound, AccountBlocked, HandleTaken, InsufficientFundsError,
    InvalidAmount, ValidationError
)
from .ledger import Ledger, Operation, utc_now
from .money import ZERO, quantize_money, format_money
from .storage import StorageInterface, StorageRecord, parse_datetime


@dataclass
class Account(StorageRecord):
    """
    Player account

    The deposit sub-state is either fully empty (amount and maturity both
    None) or fully set.
    """
    handle: str
    balance: Decimal = ZERO
    loyalty_points: int = 0
    deposit_amount: Optional[Decimal] = None
    deposit_maturity: Optional[datetime] = None
    deposit_earnings: Decimal = ZERO
    is_blocked: bool = False
    is_admin: bool = False
    team_id: Optional[str] = None

    def __post_init__(self):
        if self.balance < ZERO:
            raise ValueError("Account balance cannot be negative")
        if self.loyalty_points < 0:
            raise ValueError("Loyalty points cannot be negative")
        if (self.deposit_amount is None) != (self.deposit_maturity is None):
            raise ValueError("Deposit amount and maturity must both be set or both be empty")

    @property
    def has_deposit(self) -> bool:
        return self.deposit_amount is not None

    def can_initiate(self) -> bool:
        """Blocked accounts can still receive money but cannot spend it"""
        return not self.is_blocked

    def credit(self, amount: Decimal) -> None:
        self.balance = quantize_money(self.balance + amount)

    def debit(self, amount: Decimal) -> None:
        if self.balance < amount:
            raise InsufficientFundsError(
                f"Insufficient funds: balance {format_money(self.balance)}, "
                f"required {format_money(amount)}"
            )
        self.balance = quantize_money(self.balance - amount)

    def spend_points(self, points: int) -> None:
        if self.loyalty_points < points:
            raise InsufficientFundsError(
                f"Insufficient loyalty points: have {self.loyalty_points}, required {points}"
            )
        self.loyalty_points -= points

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        deposit_amount = data.get('deposit_amount')
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            handle=data['handle'],
            balance=Decimal(data['balance']),
            loyalty_points=int(data['loyalty_points']),
            deposit_amount=Decimal(deposit_amount) if deposit_amount is not None else None,
            deposit_maturity=parse_datetime(data.get('deposit_maturity')),
            deposit_earnings=Decimal(data.get('deposit_earnings', '0')),
            is_blocked=data.get('is_blocked', False),
            is_admin=data.get('is_admin', False),
            team_id=data.get('team_id')
        )


class AccountManager:
    """Loads, saves and administers accounts"""

    def __init__(self, storage: StorageInterface, ledger: Ledger):
        self.storage = storage
        self.ledger = ledger
        self.table_name = "accounts"

    def create_account(
        self,
        handle: str,
        initial_balance: Decimal = ZERO,
        loyalty_points: int = 0,
        is_admin: bool = False,
        team_id: Optional[str] = None,
        account_id: Optional[str] = None
    ) -> Account:
        """
        Register a new account

        An opening balance is recorded as a credit entry so that the ledger
        accounts for every unit of money in circulation.

        Raises:
            InvalidAmount: If the opening balance or points are negative
            HandleTaken: If another account already uses the handle
        """
        handle = handle.strip()
        if not handle:
            raise ValidationError("Account handle cannot be empty")
        initial_balance = quantize_money(initial_balance)
        if initial_balance < ZERO or loyalty_points < 0:
            raise InvalidAmount("Opening balance and loyalty points cannot be negative")

        with self.storage.atomic():
            if self.get_account_by_handle(handle):
                raise HandleTaken(f"Handle '{handle}' is already taken")

            now = utc_now()
            account = Account(
                id=account_id or str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                handle=handle,
                balance=initial_balance,
                loyalty_points=loyalty_points,
                is_admin=is_admin,
                team_id=team_id
            )
            self.storage.save(self.table_name, account.id, account.to_dict())

            if initial_balance > ZERO:
                self.ledger.record(
                    Operation("open_account", now), account.id, "Opening balance",
                    initial_balance, True, comment="Initial funds"
                )

        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        data = self.storage.load(self.table_name, account_id)
        if data:
            return Account.from_dict(data)
        return None

    def require_account(self, account_id: str) -> Account:
        account = self.get_account(account_id)
        if not account:
            raise AccountNotFound(f"Account {account_id} not found")
        return account

    def require_active_account(self, account_id: str) -> Account:
        """Load an account that is about to spend money"""
        account = self.require_account(account_id)
        if not account.can_initiate():
            raise AccountBlocked(f"Account {account.handle} is blocked")
        return account

    def get_account_by_handle(self, handle: str) -> Optional[Account]:
        found = self.storage.find(self.table_name, {"handle": handle})
        if found:
            return Account.from_dict(found[0])
        return None

    def list_accounts(self) -> List[Account]:
        return [Account.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def save_account(self, account: Account, now: Optional[datetime] = None) -> None:
        account.updated_at = now or utc_now()
        self.storage.save(self.table_name, account.id, account.to_dict())

    def set_blocked(self, account_id: str, blocked: bool) -> Account:
        with self.storage.atomic():
            account = self.require_account(account_id)
            account.is_blocked = blocked
            self.save_account(account)
        return account

    def assign_team(self, account_id: str, team_id: Optional[str]) -> Account:
        with self.storage.atomic():
            account = self.require_account(account_id)
            account.team_id = team_id
            self.save_account(account)
        return account

    def total_balance(self) -> Decimal:
        """Money held on balances across all accounts"""
        return sum((account.balance for account in self.list_accounts()), ZERO)
