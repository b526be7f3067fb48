"""
Ledger Engine

Append-only record of every money movement. Each side of an operation is one
LedgerEntry; entries are never updated or deleted. All entries written by a
single atomic unit share that unit's operation id, so the net money created
or destroyed by an operation is the sum of its entries' signed amounts.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import uuid

from .money import ZERO, quantize_money
from .storage import StorageInterface, StorageRecord, parse_datetime


@dataclass
class Operation:
    """
    Context of one atomic unit: its id, the timestamp every write in the unit
    uses, and the notifications to hand to the sink once the unit commits.
    """
    name: str
    now: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    notifications: List[Tuple[str, str]] = field(default_factory=list)

    def notify(self, account_id: str, text: str) -> None:
        """Queue a notification; it is delivered only after commit"""
        self.notifications.append((account_id, text))


@dataclass
class LedgerEntry(StorageRecord):
    """One side of a money movement"""
    account_id: str
    operation_id: str
    action: str
    amount: Decimal          # Never negative; direction carried by is_positive
    is_positive: bool
    comment: str = ""
    details: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.amount < ZERO:
            raise ValueError("Ledger entry amount cannot be negative")

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.is_positive else -self.amount

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerEntry':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            account_id=data['account_id'],
            operation_id=data['operation_id'],
            action=data['action'],
            amount=Decimal(data['amount']),
            is_positive=data['is_positive'],
            comment=data.get('comment', ""),
            details=data.get('details')
        )


class Ledger:
    """Writes and reads ledger entries"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "ledger_entries"

    def record(
        self,
        operation: Operation,
        account_id: str,
        action: str,
        amount: Decimal,
        is_positive: bool,
        comment: str = "",
        details: Optional[Dict[str, Any]] = None
    ) -> LedgerEntry:
        """
        Append one entry for the given operation

        Args:
            operation: The atomic unit the entry belongs to
            account_id: Account whose balance moved
            action: Short label ("Transfer out", "Loan issued", ...)
            amount: Non-negative amount moved
            is_positive: True for a credit to the account, False for a debit
            comment: Free-text comment shown in the history
            details: Optional structured payload (e.g. checkout line items)
        """
        entry = LedgerEntry(
            id=str(uuid.uuid4()),
            created_at=operation.now,
            updated_at=operation.now,
            account_id=account_id,
            operation_id=operation.id,
            action=action,
            amount=quantize_money(amount),
            is_positive=is_positive,
            comment=comment,
            details=details
        )
        self.storage.save(self.table_name, entry.id, entry.to_dict())
        return entry

    def get_entries_for_account(self, account_id: str, limit: Optional[int] = None) -> List[LedgerEntry]:
        """Entries of one account, most recent first"""
        entries = [
            LedgerEntry.from_dict(data)
            for data in self.storage.find(self.table_name, {"account_id": account_id})
        ]
        # Stable sort keeps insertion order for equal timestamps
        entries.reverse()
        entries.sort(key=lambda e: e.created_at, reverse=True)
        if limit is not None:
            entries = entries[:limit]
        return entries

    def get_entries_for_operation(self, operation_id: str) -> List[LedgerEntry]:
        """All entries written by one atomic unit"""
        return [
            LedgerEntry.from_dict(data)
            for data in self.storage.find(self.table_name, {"operation_id": operation_id})
        ]

    def net_amount(self, operation_id: str) -> Decimal:
        """Money created (+) or destroyed (-) by one operation"""
        return sum(
            (entry.signed_amount for entry in self.get_entries_for_operation(operation_id)),
            ZERO
        )

    def count(self) -> int:
        return self.storage.count(self.table_name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
