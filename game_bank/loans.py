"""
Loan Management Module

One loan per account. Requests are either approved on the spot (auto-approve)
or parked as pending requests for an administrator. The interest rate is
fixed when a loan is first issued; top-ups keep the original rate.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from .accounts import Account, AccountManager
from .errors import (
    LoanLimitExceeded, LoanRequestAlreadyResolved, LoanRequestNotFound,
    NoActiveLoan, InvalidAmount, InsufficientFundsError
)
from .ledger import Ledger, Operation
from .money import ZERO, quantize_money, to_decimal, format_money
from .storage import StorageInterface, StorageRecord, parse_datetime


class LoanRequestStatus(Enum):
    """Lifecycle of a loan request awaiting an administrator"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class LoanConfig:
    """Administrator-controlled loan terms"""
    max_amount: Decimal
    interest_rate: Decimal      # Percent, e.g. 5 for 5%
    auto_approve: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_amount": str(self.max_amount),
            "interest_rate": str(self.interest_rate),
            "auto_approve": self.auto_approve
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanConfig':
        return cls(
            max_amount=Decimal(data['max_amount']),
            interest_rate=Decimal(data['interest_rate']),
            auto_approve=bool(data['auto_approve'])
        )


@dataclass
class Loan(StorageRecord):
    """Outstanding loan; the record id is the borrower's account id"""
    account_id: str
    principal: Decimal
    interest_rate: Decimal
    issued_at: datetime

    @property
    def is_active(self) -> bool:
        return self.principal > ZERO

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            account_id=data['account_id'],
            principal=Decimal(data['principal']),
            interest_rate=Decimal(data['interest_rate']),
            issued_at=parse_datetime(data['issued_at'])
        )


@dataclass
class PendingLoanRequest(StorageRecord):
    """Loan request waiting for an administrator decision"""
    account_id: str
    amount: Decimal
    status: LoanRequestStatus = LoanRequestStatus.PENDING
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingLoanRequest':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            account_id=data['account_id'],
            amount=Decimal(data['amount']),
            status=LoanRequestStatus(data['status']),
            resolved_at=parse_datetime(data.get('resolved_at'))
        )


@dataclass
class LoanRequestResult:
    operation_id: str
    auto_approved: bool
    loan: Optional[Loan] = None
    request: Optional[PendingLoanRequest] = None
    balance: Optional[Decimal] = None


@dataclass
class RepaymentResult:
    operation_id: str
    repaid: Decimal
    remaining_principal: Decimal
    balance: Decimal


class LoanManager:
    """
    Loan issuance, repayment and pending request resolution

    Operation methods run inside the caller's atomic unit; configuration
    changes open their own.
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        ledger: Ledger,
        default_config: Optional[LoanConfig] = None
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.ledger = ledger
        self.default_config = default_config or LoanConfig(
            max_amount=Decimal('1000.00'),
            interest_rate=Decimal('5'),
            auto_approve=True
        )
        self.table_name = "loans"
        self.requests_table = "pending_loans"
        self.settings_table = "settings"
        self.config_key = "loan_config"

    # Configuration

    def get_config(self) -> LoanConfig:
        data = self.storage.load(self.settings_table, self.config_key)
        if data:
            return LoanConfig.from_dict(data)
        return self.default_config

    def set_config(
        self,
        max_amount: Optional[Decimal] = None,
        interest_rate: Optional[Decimal] = None,
        auto_approve: Optional[bool] = None
    ) -> LoanConfig:
        """Update any subset of the loan terms (admin)"""
        with self.storage.atomic():
            current = self.get_config()
            updated = LoanConfig(
                max_amount=quantize_money(max_amount) if max_amount is not None else current.max_amount,
                interest_rate=to_decimal(interest_rate) if interest_rate is not None else current.interest_rate,
                auto_approve=auto_approve if auto_approve is not None else current.auto_approve
            )
            if updated.max_amount < ZERO or updated.interest_rate < ZERO:
                raise InvalidAmount("Loan limit and interest rate cannot be negative")
            self.storage.save(self.settings_table, self.config_key, updated.to_dict())
        return updated

    # Reads

    def get_loan(self, account_id: str) -> Optional[Loan]:
        data = self.storage.load(self.table_name, account_id)
        if data:
            return Loan.from_dict(data)
        return None

    def get_request(self, request_id: str) -> Optional[PendingLoanRequest]:
        data = self.storage.load(self.requests_table, request_id)
        if data:
            return PendingLoanRequest.from_dict(data)
        return None

    def list_pending_requests(self) -> List[PendingLoanRequest]:
        return [
            PendingLoanRequest.from_dict(data)
            for data in self.storage.find(
                self.requests_table, {"status": LoanRequestStatus.PENDING.value}
            )
        ]

    # Operations

    def request_loan(self, operation: Operation, account_id: str, amount: Decimal) -> LoanRequestResult:
        """
        Ask for `amount` more principal

        Raises:
            LoanLimitExceeded: If existing principal + amount exceeds the limit
        """
        account = self.account_manager.require_active_account(account_id)
        config = self.get_config()
        self._check_limit(account, amount, config)

        if config.auto_approve:
            loan = self._issue(operation, account, amount, config)
            operation.notify(
                account.id,
                f"Your loan of {format_money(amount)} has been approved at {loan.interest_rate}%."
            )
            return LoanRequestResult(
                operation_id=operation.id,
                auto_approved=True,
                loan=loan,
                balance=account.balance
            )

        request = PendingLoanRequest(
            id=str(uuid.uuid4()),
            created_at=operation.now,
            updated_at=operation.now,
            account_id=account.id,
            amount=amount
        )
        self._save_request(request)
        operation.notify(
            account.id,
            f"Your loan request for {format_money(amount)} is pending approval."
        )
        return LoanRequestResult(
            operation_id=operation.id,
            auto_approved=False,
            request=request,
            balance=account.balance
        )

    def approve_request(self, operation: Operation, request_id: str) -> LoanRequestResult:
        """Issue the loan for a pending request, re-checking the limit"""
        request = self._require_pending(request_id)
        account = self.account_manager.require_account(request.account_id)
        config = self.get_config()
        self._check_limit(account, request.amount, config)

        loan = self._issue(operation, account, request.amount, config)
        self._resolve(operation, request, LoanRequestStatus.APPROVED)
        operation.notify(
            account.id,
            f"Your loan of {format_money(request.amount)} has been approved at {loan.interest_rate}%."
        )
        return LoanRequestResult(
            operation_id=operation.id,
            auto_approved=False,
            loan=loan,
            request=request,
            balance=account.balance
        )

    def reject_request(self, operation: Operation, request_id: str) -> PendingLoanRequest:
        request = self._require_pending(request_id)
        self._resolve(operation, request, LoanRequestStatus.REJECTED)
        operation.notify(
            request.account_id,
            f"Your loan request for {format_money(request.amount)} was rejected."
        )
        return request

    def repay(self, operation: Operation, account_id: str, amount: Decimal) -> RepaymentResult:
        """
        Pay back up to `amount` of the outstanding principal

        The balance must cover the requested amount, but only
        min(amount, principal) is taken from it.

        Raises:
            NoActiveLoan: If the account owes nothing
            InsufficientFundsError: If the balance does not cover the repayment
        """
        account = self.account_manager.require_active_account(account_id)
        loan = self.get_loan(account.id)
        if not loan or not loan.is_active:
            raise NoActiveLoan(f"Account {account.handle} has no active loan")

        if account.balance < amount:
            raise InsufficientFundsError(
                f"Insufficient funds: balance {format_money(account.balance)}, "
                f"repayment requested {format_money(amount)}"
            )
        repaid = quantize_money(min(amount, loan.principal))
        account.debit(repaid)
        self.account_manager.save_account(account, operation.now)

        loan.principal = quantize_money(loan.principal - repaid)
        loan.updated_at = operation.now
        self._save_loan(loan)

        self.ledger.record(
            operation, account.id, "Loan repayment", repaid, False,
            comment=f"Remaining principal {format_money(loan.principal)}"
        )

        return RepaymentResult(
            operation_id=operation.id,
            repaid=repaid,
            remaining_principal=loan.principal,
            balance=account.balance
        )

    def _check_limit(self, account: Account, amount: Decimal, config: LoanConfig) -> None:
        loan = self.get_loan(account.id)
        outstanding = loan.principal if loan else ZERO
        if outstanding + amount > config.max_amount:
            raise LoanLimitExceeded(
                f"Loan of {format_money(amount)} would bring debt to "
                f"{format_money(outstanding + amount)}, limit is {format_money(config.max_amount)}"
            )

    def _issue(self, operation: Operation, account: Account, amount: Decimal, config: LoanConfig) -> Loan:
        loan = self.get_loan(account.id)
        if loan:
            loan.principal = quantize_money(loan.principal + amount)
            loan.updated_at = operation.now
        else:
            loan = Loan(
                id=account.id,
                created_at=operation.now,
                updated_at=operation.now,
                account_id=account.id,
                principal=quantize_money(amount),
                interest_rate=config.interest_rate,
                issued_at=operation.now
            )
        self._save_loan(loan)

        account.credit(amount)
        self.account_manager.save_account(account, operation.now)

        self.ledger.record(
            operation, account.id, "Loan issued", amount, True,
            comment=f"Interest rate {loan.interest_rate}%"
        )
        return loan

    def _require_pending(self, request_id: str) -> PendingLoanRequest:
        request = self.get_request(request_id)
        if not request:
            raise LoanRequestNotFound(f"Loan request {request_id} not found")
        if request.status != LoanRequestStatus.PENDING:
            raise LoanRequestAlreadyResolved(
                f"Loan request {request_id} is already {request.status.value}"
            )
        return request

    def _resolve(self, operation: Operation, request: PendingLoanRequest, status: LoanRequestStatus) -> None:
        request.status = status
        request.resolved_at = operation.now
        request.updated_at = operation.now
        self._save_request(request)

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.table_name, loan.id, loan.to_dict())

    def _save_request(self, request: PendingLoanRequest) -> None:
        self.storage.save(self.requests_table, request.id, request.to_dict())
