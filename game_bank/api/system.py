"""
Bank system wiring and the FastAPI dependency that hands it to endpoints
"""

import random
from decimal import Decimal
from typing import Optional

from fastapi import Request

from ..accounts import AccountManager
from ..auction import AuctionManager
from ..config import GameBankConfig, get_config
from ..deposits import DepositManager
from ..exchange import ExchangeManager
from ..insurance import InsuranceManager
from ..ledger import Ledger
from ..loans import LoanConfig, LoanManager
from ..notifications import NotificationSink, StorageNotificationSink, sink_from_config
from ..settlement import SettlementScheduler
from ..shop import ShopManager
from ..storage import StorageInterface, storage_from_url
from ..transactions import TransactionProcessor


class BankSystem:
    """Game bank with all components initialized against one store"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[GameBankConfig] = None,
        notification_sink: Optional[NotificationSink] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config or get_config()
        self.storage = storage or storage_from_url(
            self.config.database_url, self.config.store_lock_timeout_seconds
        )

        # Reads of in-app notifications always go through the store
        self.notification_store = StorageNotificationSink(self.storage)
        if notification_sink is None:
            notification_sink = sink_from_config(self.config, self.storage)
        self.notification_sink = notification_sink

        self.ledger = Ledger(self.storage)
        self.account_manager = AccountManager(self.storage, self.ledger)
        self.shop_manager = ShopManager(
            self.storage, self.account_manager, self.ledger,
            loyalty_divisor=self.config.loyalty_points_divisor
        )
        self.deposit_manager = DepositManager(
            self.account_manager, self.ledger,
            term_hours=self.config.deposit_term_hours,
            rate=Decimal(self.config.deposit_rate)
        )
        self.loan_manager = LoanManager(
            self.storage, self.account_manager, self.ledger,
            default_config=LoanConfig(
                max_amount=Decimal(self.config.loan_max_amount),
                interest_rate=Decimal(self.config.loan_interest_rate),
                auto_approve=self.config.loan_auto_approve
            )
        )
        self.insurance_manager = InsuranceManager(self.storage, self.account_manager, self.ledger)
        self.auction_manager = AuctionManager(self.storage, self.account_manager, self.ledger)
        self.exchange_manager = ExchangeManager(self.storage, self.account_manager, self.ledger)

        self.transaction_processor = TransactionProcessor(
            self.storage, self.ledger, self.account_manager, self.shop_manager,
            self.deposit_manager, self.loan_manager, self.insurance_manager,
            self.auction_manager, self.exchange_manager,
            notification_sink=self.notification_sink,
            max_retries=self.config.store_max_retries,
            loyalty_divisor=self.config.loyalty_points_divisor
        )
        self.settlement_scheduler = SettlementScheduler(
            self.storage, self.deposit_manager, self.auction_manager, self.exchange_manager,
            notification_sink=self.notification_sink,
            interval_seconds=self.config.settlement_interval_seconds,
            drift_magnitude=self.config.market_drift_percent,
            drift_bias=self.config.market_drift_bias,
            min_price=Decimal(self.config.market_min_price),
            rng=rng
        )

    def close(self) -> None:
        self.settlement_scheduler.stop()
        self.storage.close()


# Dependency to get the bank system of the running app
def get_bank_system(request: Request) -> BankSystem:
    return request.app.state.bank_system
