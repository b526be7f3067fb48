"""
Insurance Module

Insurance options sold by the bank and the single policy each account can
hold. Buying while covered extends the existing coverage instead of
replacing it.
"""

from decimal import Decimal
from datetime import datetime, timedelta
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import re
import uuid

from .accounts import AccountManager
from .errors import InvalidAmount, InvalidDuration, OptionNotFound
from .ledger import Ledger, Operation, utc_now
from .money import ZERO, quantize_money
from .storage import StorageInterface, StorageRecord, parse_datetime


DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([hd])\s*$", re.IGNORECASE)


def parse_duration(duration: str) -> timedelta:
    """
    Parse an option duration such as "12h" or "7d"

    Raises:
        InvalidDuration: If the string is malformed or not positive
    """
    match = DURATION_PATTERN.match(duration or "")
    if not match:
        raise InvalidDuration(f"Invalid insurance duration '{duration}'")
    value = int(match.group(1))
    if value <= 0:
        raise InvalidDuration(f"Insurance duration must be positive, got '{duration}'")
    if match.group(2).lower() == "h":
        return timedelta(hours=value)
    return timedelta(days=value)


@dataclass
class InsuranceOption(StorageRecord):
    label: str
    cost: Decimal
    duration: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InsuranceOption':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            label=data['label'],
            cost=Decimal(data['cost']),
            duration=data['duration']
        )


@dataclass
class InsurancePolicy(StorageRecord):
    """Coverage of one account; the record id is the account id"""
    account_id: str
    end_time: datetime

    def is_active(self, now: datetime) -> bool:
        return self.end_time > now

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InsurancePolicy':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            account_id=data['account_id'],
            end_time=parse_datetime(data['end_time'])
        )


@dataclass
class InsurancePurchase:
    operation_id: str
    option_id: str
    cost: Decimal
    end_time: datetime
    balance: Decimal


class InsuranceManager:
    """Insurance catalogue and policy purchases"""

    def __init__(self, storage: StorageInterface, account_manager: AccountManager, ledger: Ledger):
        self.storage = storage
        self.account_manager = account_manager
        self.ledger = ledger
        self.options_table = "insurance_options"
        self.policies_table = "insurance_policies"

    def add_option(self, label: str, cost: Decimal, duration: str, option_id: Optional[str] = None) -> InsuranceOption:
        """Create or replace a catalogue option (admin)"""
        parse_duration(duration)
        cost = quantize_money(cost)
        if cost < ZERO:
            raise InvalidAmount("Insurance cost cannot be negative")

        with self.storage.atomic():
            now = utc_now()
            existing = self.get_option(option_id) if option_id else None
            option = InsuranceOption(
                id=option_id or str(uuid.uuid4()),
                created_at=existing.created_at if existing else now,
                updated_at=now,
                label=label,
                cost=cost,
                duration=duration.strip().lower()
            )
            self.storage.save(self.options_table, option.id, option.to_dict())
        return option

    def get_option(self, option_id: str) -> Optional[InsuranceOption]:
        data = self.storage.load(self.options_table, option_id)
        if data:
            return InsuranceOption.from_dict(data)
        return None

    def list_options(self) -> List[InsuranceOption]:
        """Catalogue ordered by cost"""
        options = [InsuranceOption.from_dict(d) for d in self.storage.load_all(self.options_table)]
        return sorted(options, key=lambda option: option.cost)

    def get_policy(self, account_id: str) -> Optional[InsurancePolicy]:
        data = self.storage.load(self.policies_table, account_id)
        if data:
            return InsurancePolicy.from_dict(data)
        return None

    def is_covered(self, account_id: str, now: Optional[datetime] = None) -> bool:
        policy = self.get_policy(account_id)
        return bool(policy and policy.is_active(now or utc_now()))

    def buy(self, operation: Operation, account_id: str, option_id: str) -> InsurancePurchase:
        """
        Buy an option, stacking on top of any coverage still running

        New end time = max(current end, now) + option duration.
        """
        account = self.account_manager.require_active_account(account_id)
        option = self.get_option(option_id)
        if not option:
            raise OptionNotFound(f"Insurance option {option_id} not found")
        duration = parse_duration(option.duration)

        account.debit(option.cost)
        self.account_manager.save_account(account, operation.now)

        policy = self.get_policy(account.id)
        if policy:
            policy.end_time = max(policy.end_time, operation.now) + duration
            policy.updated_at = operation.now
        else:
            policy = InsurancePolicy(
                id=account.id,
                created_at=operation.now,
                updated_at=operation.now,
                account_id=account.id,
                end_time=operation.now + duration
            )
        self.storage.save(self.policies_table, policy.id, policy.to_dict())

        self.ledger.record(
            operation, account.id, "Insurance purchase", option.cost, False,
            comment=f"Policy '{option.label}' for {option.duration}"
        )

        return InsurancePurchase(
            operation_id=operation.id,
            option_id=option.id,
            cost=option.cost,
            end_time=policy.end_time,
            balance=account.balance
        )
