"""
Transaction Processing Module

The money-movement executor. Every public operation is one atomic unit
against the store: it either commits all of its balance, stock, position and
ledger changes or none of them, and raises exactly one typed error on
failure. Notifications raised during the unit are delivered only after it
commits.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from .accounts import AccountManager
from .auction import AuctionManager, AuctionState, BidResult
from .deposits import DepositManager, DepositReceipt
from .errors import BankingError, InvalidAmount, InvalidQuantity, StoreError, ValidationError
from .exchange import AssetCategory, ExchangeAsset, ExchangeManager, TradeDirection, TradeResult
from .insurance import InsuranceManager, InsurancePurchase
from .ledger import Ledger, Operation, utc_now
from .loans import LoanManager, LoanRequestResult, PendingLoanRequest, RepaymentResult
from .logging_config import get_logger, log_operation
from .money import ZERO, to_decimal, loyalty_points_for, format_money
from .notifications import NotificationSink, deliver
from .shop import CartLine, CheckoutResult, ShopManager
from .storage import StorageInterface

T = TypeVar("T")


@dataclass
class TransferResult:
    operation_id: str
    sender_id: str
    recipient_id: str
    amount: Decimal
    sender_balance: Decimal
    recipient_balance: Decimal
    loyalty_points_earned: int


@dataclass
class MarketSnapshot:
    auction: Optional[AuctionState]
    assets: Dict[str, List[ExchangeAsset]]

    @property
    def highest_bid(self) -> Decimal:
        return self.auction.highest_amount if self.auction else ZERO


def require_positive(amount: Any, what: str = "Amount") -> Decimal:
    """Parse an amount and reject zero, negative or non-numeric values"""
    try:
        value = to_decimal(amount)
    except ValueError:
        raise InvalidAmount(f"{what} '{amount}' is not a number")
    if value <= ZERO:
        raise InvalidAmount(f"{what} must be positive")
    if value != value.quantize(Decimal('0.01')):
        raise InvalidAmount(f"{what} cannot have fractions of a cent")
    return value


class TransactionProcessor:
    """
    Executes money-moving operations

    Each call opens one atomic unit. Business-rule errors abort the unit and
    propagate unchanged; StoreError aborts the unit and is retried up to
    ``max_retries`` times before it propagates.
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: Ledger,
        account_manager: AccountManager,
        shop_manager: ShopManager,
        deposit_manager: DepositManager,
        loan_manager: LoanManager,
        insurance_manager: InsuranceManager,
        auction_manager: AuctionManager,
        exchange_manager: ExchangeManager,
        notification_sink: Optional[NotificationSink] = None,
        max_retries: int = 3,
        loyalty_divisor: int = 100,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.ledger = ledger
        self.account_manager = account_manager
        self.shop_manager = shop_manager
        self.deposit_manager = deposit_manager
        self.loan_manager = loan_manager
        self.insurance_manager = insurance_manager
        self.auction_manager = auction_manager
        self.exchange_manager = exchange_manager
        self.notification_sink = notification_sink
        self.max_retries = max_retries
        self.loyalty_divisor = loyalty_divisor
        self.clock = clock
        self.logger = get_logger("game_bank.transactions")

    def _execute(self, name: str, work: Callable[[Operation], T], account_id: Optional[str] = None) -> T:
        """Run `work` as one atomic unit, then deliver its notifications"""
        attempt = 0
        while True:
            attempt += 1
            operation = Operation(name=name, now=self.clock())
            try:
                with self.storage.atomic():
                    result = work(operation)
                break
            except StoreError as e:
                if attempt > self.max_retries:
                    log_operation(
                        self.logger, "error", f"{name} failed after {attempt} attempts: {e.message}",
                        operation, account_id, attempts=attempt
                    )
                    raise
                log_operation(
                    self.logger, "warning", f"{name} hit a store error, retrying: {e.message}",
                    operation, account_id, attempt=attempt
                )
            except BankingError as e:
                log_operation(
                    self.logger, "info", f"{name} rejected: {e.message}",
                    operation, account_id, error=e.kind
                )
                raise

        log_operation(
            self.logger, "info", f"{name} committed",
            operation, account_id, notifications=len(operation.notifications)
        )
        deliver(self.notification_sink, operation.notifications, self.logger)
        return result

    def transfer(self, sender_id: str, recipient_id: str, amount: Any) -> TransferResult:
        """
        Move money between two accounts

        The sender earns floor(amount / 100) loyalty points and the recipient
        is notified.
        """
        amount = require_positive(amount)
        if sender_id == recipient_id:
            raise InvalidAmount("Cannot transfer money to the same account")

        def work(operation: Operation) -> TransferResult:
            sender = self.account_manager.require_active_account(sender_id)
            recipient = self.account_manager.require_account(recipient_id)

            points = loyalty_points_for(amount, self.loyalty_divisor)
            sender.debit(amount)
            sender.loyalty_points += points
            recipient.credit(amount)
            self.account_manager.save_account(sender, operation.now)
            self.account_manager.save_account(recipient, operation.now)

            self.ledger.record(
                operation, sender.id, "Transfer out", amount, False,
                comment=f"To {recipient.handle}"
            )
            self.ledger.record(
                operation, recipient.id, "Transfer in", amount, True,
                comment=f"From {sender.handle}"
            )
            operation.notify(
                recipient.id,
                f"You received {format_money(amount)} from {sender.handle}."
            )

            return TransferResult(
                operation_id=operation.id,
                sender_id=sender.id,
                recipient_id=recipient.id,
                amount=amount,
                sender_balance=sender.balance,
                recipient_balance=recipient.balance,
                loyalty_points_earned=points
            )

        return self._execute("transfer", work, sender_id)

    def checkout(self, account_id: str, cart: Sequence[CartLine], loyalty_points_to_spend: int = 0) -> CheckoutResult:
        return self._execute(
            "checkout",
            lambda operation: self.shop_manager.checkout(
                operation, account_id, cart, loyalty_points_to_spend
            ),
            account_id
        )

    def open_deposit(self, account_id: str, amount: Any) -> DepositReceipt:
        amount = require_positive(amount)
        return self._execute(
            "open_deposit",
            lambda operation: self.deposit_manager.open_deposit(operation, account_id, amount),
            account_id
        )

    def request_loan(self, account_id: str, amount: Any) -> LoanRequestResult:
        amount = require_positive(amount)
        return self._execute(
            "request_loan",
            lambda operation: self.loan_manager.request_loan(operation, account_id, amount),
            account_id
        )

    def approve_loan_request(self, request_id: str) -> LoanRequestResult:
        return self._execute(
            "approve_loan_request",
            lambda operation: self.loan_manager.approve_request(operation, request_id)
        )

    def reject_loan_request(self, request_id: str) -> PendingLoanRequest:
        return self._execute(
            "reject_loan_request",
            lambda operation: self.loan_manager.reject_request(operation, request_id)
        )

    def repay_loan(self, account_id: str, amount: Any) -> RepaymentResult:
        amount = require_positive(amount)
        return self._execute(
            "repay_loan",
            lambda operation: self.loan_manager.repay(operation, account_id, amount),
            account_id
        )

    def buy_insurance(self, account_id: str, option_id: str) -> InsurancePurchase:
        return self._execute(
            "buy_insurance",
            lambda operation: self.insurance_manager.buy(operation, account_id, option_id),
            account_id
        )

    def place_bid(self, account_id: str, amount: Any) -> BidResult:
        amount = require_positive(amount, "Bid")
        return self._execute(
            "place_bid",
            lambda operation: self.auction_manager.place_bid(operation, account_id, amount),
            account_id
        )

    def trade_asset(self, account_id: str, asset_id: str, quantity: Any, direction: Any) -> TradeResult:
        try:
            quantity = to_decimal(quantity)
        except ValueError:
            raise InvalidQuantity(f"Quantity '{quantity}' is not a number")
        if quantity <= ZERO:
            raise InvalidQuantity("Trade quantity must be positive")
        try:
            direction = TradeDirection(direction)
        except ValueError:
            raise ValidationError(f"Unknown trade direction '{direction}'")
        return self._execute(
            "trade_asset",
            lambda operation: self.exchange_manager.trade(
                operation, account_id, asset_id, quantity, direction
            ),
            account_id
        )

    def start_auction(self, end_time: Optional[datetime] = None, lot: str = "") -> AuctionState:
        return self._execute(
            "start_auction",
            lambda operation: self.auction_manager.start_auction(operation, end_time, lot)
        )

    def close_auction(self) -> Optional[AuctionState]:
        return self._execute("close_auction", self.auction_manager.close)

    def get_market_snapshot(self) -> MarketSnapshot:
        """Auction state and every listed asset grouped by category, read in one unit"""
        with self.storage.atomic():
            auction = self.auction_manager.get_state()
            assets = self.exchange_manager.list_assets()
        grouped: Dict[str, List[ExchangeAsset]] = {category.value: [] for category in AssetCategory}
        for asset in assets:
            grouped[asset.category.value].append(asset)
        return MarketSnapshot(auction=auction, assets=grouped)
