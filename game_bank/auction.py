"""
Auction Module

The bank runs one auction at a time, kept as a single shared record. Bidding
escrows the bid amount: the new leader is debited immediately and the
previous leader is refunded in the same unit, so at most one bidder has money
held at any moment.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .accounts import AccountManager
from .errors import AuctionNotActive, AuctionNotFound, BidTooLow
from .ledger import Ledger, Operation
from .money import ZERO, format_money
from .storage import StorageInterface, StorageRecord, ensure_utc, parse_datetime


@dataclass
class Bid:
    account_id: str
    handle: str
    amount: Decimal
    placed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "handle": self.handle,
            "amount": str(self.amount),
            "placed_at": self.placed_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Bid':
        return cls(
            account_id=data['account_id'],
            handle=data['handle'],
            amount=Decimal(data['amount']),
            placed_at=parse_datetime(data['placed_at'])
        )


@dataclass
class AuctionState(StorageRecord):
    """The single auction record"""
    is_active: bool = False
    end_time: Optional[datetime] = None
    lot: str = ""
    bids: List[Bid] = field(default_factory=list)
    winner: Optional[Bid] = None

    @property
    def highest_bid(self) -> Optional[Bid]:
        """Strictly highest bid; bids only ever increase so ties cannot occur"""
        if not self.bids:
            return None
        return max(self.bids, key=lambda bid: bid.amount)

    @property
    def highest_amount(self) -> Decimal:
        bid = self.highest_bid
        return bid.amount if bid else ZERO

    def is_open(self, now: datetime) -> bool:
        """Accepting bids: active and not past its end time"""
        if not self.is_active:
            return False
        return self.end_time is None or self.end_time > now

    def is_due(self, now: datetime) -> bool:
        """Active with an end time that has passed"""
        return self.is_active and self.end_time is not None and self.end_time <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "is_active": self.is_active,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "lot": self.lot,
            "bids": [bid.to_dict() for bid in self.bids],
            "winner": self.winner.to_dict() if self.winner else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuctionState':
        winner = data.get('winner')
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            is_active=data.get('is_active', False),
            end_time=parse_datetime(data.get('end_time')),
            lot=data.get('lot', ""),
            bids=[Bid.from_dict(bid) for bid in data.get('bids', [])],
            winner=Bid.from_dict(winner) if winner else None
        )


@dataclass
class BidResult:
    operation_id: str
    amount: Decimal
    refunded_account_id: Optional[str]
    balance: Decimal
    auction: AuctionState


class AuctionManager:
    """Auction lifecycle and escrowed bidding"""

    STATE_ID = "current"

    def __init__(self, storage: StorageInterface, account_manager: AccountManager, ledger: Ledger):
        self.storage = storage
        self.account_manager = account_manager
        self.ledger = ledger
        self.table_name = "auction"

    def get_state(self) -> Optional[AuctionState]:
        data = self.storage.load(self.table_name, self.STATE_ID)
        if data:
            return AuctionState.from_dict(data)
        return None

    def start_auction(self, operation: Operation, end_time: Optional[datetime], lot: str = "") -> AuctionState:
        """
        Open a fresh auction, clearing bids and winner

        A leader still holding escrow from a running auction is refunded. An
        end time without a zone is taken as UTC.
        """
        end_time = ensure_utc(end_time)
        state = self.get_state()
        if state and state.is_active and state.highest_bid:
            self._refund(operation, state.highest_bid, "Auction restarted, bid refunded")

        created_at = state.created_at if state else operation.now
        state = AuctionState(
            id=self.STATE_ID,
            created_at=created_at,
            updated_at=operation.now,
            is_active=True,
            end_time=end_time,
            lot=lot
        )
        self._save_state(state)
        return state

    def place_bid(self, operation: Operation, account_id: str, amount: Decimal) -> BidResult:
        """
        Bid on the running auction

        Raises:
            AuctionNotFound: If no auction was ever started
            AuctionNotActive: If the auction is closed or past its end time
            BidTooLow: If amount does not beat the current highest bid
            InsufficientFundsError: If the bidder cannot cover the bid
        """
        state = self.get_state()
        if not state:
            raise AuctionNotFound("No auction has been started")
        if not state.is_open(operation.now):
            raise AuctionNotActive("The auction is not accepting bids")

        highest = state.highest_bid
        if amount <= state.highest_amount:
            raise BidTooLow(
                f"Bid must be higher than the current {format_money(state.highest_amount)}"
            )

        bidder = self.account_manager.require_active_account(account_id)

        refunded_account_id = None
        if highest:
            self._refund(operation, highest, "Outbid, bid refunded")
            refunded_account_id = highest.account_id
            if highest.account_id != bidder.id:
                operation.notify(
                    highest.account_id,
                    f"Your bid of {format_money(highest.amount)} on the auction was outbid!"
                )
            # Reload so a self-outbid sees its own refund
            bidder = self.account_manager.require_account(bidder.id)

        bidder.debit(amount)
        self.account_manager.save_account(bidder, operation.now)
        self.ledger.record(
            operation, bidder.id, "Auction bid", amount, False,
            comment=f"Bid held in escrow for '{state.lot}'" if state.lot else "Bid held in escrow"
        )

        state.bids.append(Bid(
            account_id=bidder.id,
            handle=bidder.handle,
            amount=amount,
            placed_at=operation.now
        ))
        state.updated_at = operation.now
        self._save_state(state)

        return BidResult(
            operation_id=operation.id,
            amount=amount,
            refunded_account_id=refunded_account_id,
            balance=bidder.balance,
            auction=state
        )

    def close(self, operation: Operation) -> Optional[AuctionState]:
        """
        Deactivate the auction and award it to the highest bid

        The winner's escrow is kept by the bank. Returns None when no active
        auction exists.
        """
        state = self.get_state()
        if not state or not state.is_active:
            return None

        state.is_active = False
        state.winner = state.highest_bid
        state.updated_at = operation.now
        self._save_state(state)

        if state.winner:
            operation.notify(
                state.winner.account_id,
                f"You won the auction with a bid of {format_money(state.winner.amount)}!"
            )
        return state

    def close_if_due(self, operation: Operation, now: datetime) -> Optional[AuctionState]:
        """Close the auction when its end time has passed; no end time never closes"""
        state = self.get_state()
        if not state or not state.is_due(now):
            return None
        return self.close(operation)

    def _refund(self, operation: Operation, bid: Bid, comment: str) -> None:
        account = self.account_manager.require_account(bid.account_id)
        account.credit(bid.amount)
        self.account_manager.save_account(account, operation.now)
        self.ledger.record(operation, account.id, "Auction refund", bid.amount, True, comment=comment)

    def _save_state(self, state: AuctionState) -> None:
        self.storage.save(self.table_name, state.id, state.to_dict())
