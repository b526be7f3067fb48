"""
Settlement Scheduler

Periodic batch that matures deposits, closes an expired auction and drifts
exchange prices. One tick is one atomic unit: if any step fails, nothing of
that tick is kept and the next tick retries the whole batch.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import random
import threading

from .auction import AuctionManager, AuctionState
from .deposits import DepositManager, MaturedDeposit
from .exchange import ExchangeManager, PriceChange
from .ledger import Operation, utc_now
from .logging_config import get_logger, log_operation
from .notifications import NotificationSink, deliver
from .storage import StorageInterface, ensure_utc


@dataclass
class SettlementReport:
    operation_id: str
    ran_at: datetime
    matured_deposits: List[MaturedDeposit] = field(default_factory=list)
    closed_auction: Optional[AuctionState] = None
    price_changes: List[PriceChange] = field(default_factory=list)
    notifications_sent: int = 0


class SettlementScheduler:
    """Runs settlement ticks on a timer thread"""

    def __init__(
        self,
        storage: StorageInterface,
        deposit_manager: DepositManager,
        auction_manager: AuctionManager,
        exchange_manager: ExchangeManager,
        notification_sink: Optional[NotificationSink] = None,
        interval_seconds: float = 60.0,
        drift_magnitude: float = 1.0,
        drift_bias: float = 0.01,
        min_price: Decimal = Decimal('0.01'),
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.deposit_manager = deposit_manager
        self.auction_manager = auction_manager
        self.exchange_manager = exchange_manager
        self.notification_sink = notification_sink
        self.interval_seconds = interval_seconds
        self.drift_magnitude = drift_magnitude
        self.drift_bias = drift_bias
        self.min_price = Decimal(min_price)
        self.rng = rng or random.Random()
        self.clock = clock
        self.logger = get_logger("game_bank.settlement")

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks_run = 0
        self.ticks_failed = 0

    def run_tick(self, now: Optional[datetime] = None) -> SettlementReport:
        """
        Run one settlement batch

        Raises whatever aborted the batch; nothing of the batch is kept and no
        notification is sent in that case.
        """
        now = ensure_utc(now or self.clock())
        operation = Operation(name="settlement_tick", now=now)

        with self.storage.atomic():
            matured = self.deposit_manager.mature_due_deposits(operation, now)
            closed = self.auction_manager.close_if_due(operation, now)
            changes = self.exchange_manager.drift_prices(
                operation,
                self.rng,
                magnitude=self.drift_magnitude,
                bias=self.drift_bias,
                min_price=self.min_price
            )

        sent = deliver(self.notification_sink, operation.notifications, self.logger)
        report = SettlementReport(
            operation_id=operation.id,
            ran_at=now,
            matured_deposits=matured,
            closed_auction=closed,
            price_changes=changes,
            notifications_sent=sent
        )

        log_operation(
            self.logger, "info", "Settlement tick committed", operation,
            matured_deposits=len(matured),
            auction_closed=closed is not None,
            assets_repriced=len(changes)
        )
        return report

    def _safe_tick(self) -> Optional[SettlementReport]:
        """Tick for the timer thread: failures are logged, never raised"""
        try:
            report = self.run_tick()
            self.ticks_run += 1
            return report
        except Exception:
            self.ticks_failed += 1
            self.logger.exception("Settlement tick failed; batch rolled back")
            return None

    def _run(self) -> None:
        self.logger.info(f"Settlement scheduler started (every {self.interval_seconds}s)")
        while not self._stop_event.wait(self.interval_seconds):
            self._safe_tick()
        self.logger.info("Settlement scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="settlement-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
