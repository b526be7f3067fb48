"""
Deposit Module

Fixed-term deposits held on the account itself. Opening a deposit moves money
off the balance; the settlement tick pays principal plus interest back once
the maturity timestamp has passed and clears the deposit in the same unit,
so a deposit pays out exactly once.
"""

from decimal import Decimal
from datetime import datetime, timedelta
from dataclasses import dataclass
from typing import List

from .accounts import AccountManager
from .errors import DepositAlreadyActive
from .ledger import Ledger, Operation
from .money import quantize_money, format_money


@dataclass
class DepositReceipt:
    operation_id: str
    amount: Decimal
    maturity: datetime
    balance: Decimal


@dataclass
class MaturedDeposit:
    account_id: str
    principal: Decimal
    payout: Decimal

    @property
    def profit(self) -> Decimal:
        return self.payout - self.principal


class DepositManager:
    """Opens deposits and pays out matured ones"""

    def __init__(
        self,
        account_manager: AccountManager,
        ledger: Ledger,
        term_hours: int = 24,
        rate: Decimal = Decimal('0.10')
    ):
        self.account_manager = account_manager
        self.ledger = ledger
        self.term = timedelta(hours=term_hours)
        self.rate = Decimal(rate)

    def open_deposit(self, operation: Operation, account_id: str, amount: Decimal) -> DepositReceipt:
        """Lock `amount` until now + term. Runs inside the caller's unit."""
        account = self.account_manager.require_active_account(account_id)
        if account.has_deposit:
            raise DepositAlreadyActive(f"Account {account.handle} already has an active deposit")

        account.debit(amount)
        account.deposit_amount = amount
        account.deposit_maturity = operation.now + self.term
        self.account_manager.save_account(account, operation.now)

        self.ledger.record(
            operation, account.id, "Deposit opened", amount, False,
            comment=f"Deposit of {format_money(amount)} until {account.deposit_maturity.isoformat()}"
        )

        return DepositReceipt(
            operation_id=operation.id,
            amount=amount,
            maturity=account.deposit_maturity,
            balance=account.balance
        )

    def payout_for(self, principal: Decimal) -> Decimal:
        return quantize_money(principal * (Decimal('1') + self.rate))

    def mature_due_deposits(self, operation: Operation, now: datetime) -> List[MaturedDeposit]:
        """Pay out every deposit whose maturity is at or before `now`"""
        matured = []
        for account in self.account_manager.list_accounts():
            if not account.has_deposit or account.deposit_maturity > now:
                continue

            principal = account.deposit_amount
            payout = self.payout_for(principal)
            profit = payout - principal

            account.credit(payout)
            account.deposit_amount = None
            account.deposit_maturity = None
            account.deposit_earnings = quantize_money(account.deposit_earnings + profit)
            self.account_manager.save_account(account, operation.now)

            self.ledger.record(
                operation, account.id, "Deposit returned", payout, True,
                comment=f"+{format_money(profit)} profit"
            )
            operation.notify(
                account.id,
                f"Deposit matured! You received {format_money(payout)}."
            )
            matured.append(MaturedDeposit(account.id, principal, payout))

        return matured
