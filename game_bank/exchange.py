"""
Exchange Module

Tradable assets (company shares and crypto) and per-account portfolio
positions. Prices move only through the settlement tick's drift; trades
settle instantly at the current price.
"""

from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
import random

from .accounts import AccountManager
from .errors import (
    AssetNotFound, InsufficientHoldingsError, InvalidAmount, InvalidQuantity, ValidationError
)
from .ledger import Ledger, Operation, utc_now
from .money import CENT, ZERO, quantize_money, quantize_price, to_decimal
from .storage import StorageInterface, StorageRecord, parse_datetime


class AssetCategory(Enum):
    COMPANY = "company"
    CRYPTO = "crypto"


class TradeDirection(Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass
class ExchangeAsset(StorageRecord):
    """Listed asset; the record id is the ticker"""
    name: str
    category: AssetCategory
    price: Decimal

    @property
    def ticker(self) -> str:
        return self.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExchangeAsset':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            name=data['name'],
            category=AssetCategory(data['category']),
            price=Decimal(data['price'])
        )


@dataclass
class PortfolioPosition(StorageRecord):
    account_id: str
    asset_id: str
    quantity: Decimal

    @staticmethod
    def key(account_id: str, asset_id: str) -> str:
        return f"{account_id}:{asset_id}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PortfolioPosition':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            account_id=data['account_id'],
            asset_id=data['asset_id'],
            quantity=Decimal(data['quantity'])
        )


@dataclass
class TradeResult:
    operation_id: str
    asset_id: str
    direction: TradeDirection
    quantity: Decimal
    price: Decimal
    total: Decimal
    position: Decimal
    balance: Decimal


@dataclass
class PriceChange:
    asset_id: str
    old_price: Decimal
    new_price: Decimal


class ExchangeManager:
    """Asset listings, trading and price drift"""

    def __init__(self, storage: StorageInterface, account_manager: AccountManager, ledger: Ledger):
        self.storage = storage
        self.account_manager = account_manager
        self.ledger = ledger
        self.assets_table = "exchange_assets"
        self.positions_table = "portfolio_positions"

    def register_asset(
        self,
        ticker: str,
        name: str,
        category: AssetCategory,
        price: Decimal
    ) -> ExchangeAsset:
        """List an asset or update its name, category and price (admin)"""
        ticker = ticker.strip().upper()
        if not ticker:
            raise ValidationError("Ticker cannot be empty")
        price = quantize_price(price)
        if price <= ZERO:
            raise InvalidAmount("Asset price must be positive")

        with self.storage.atomic():
            now = utc_now()
            existing = self.get_asset(ticker)
            asset = ExchangeAsset(
                id=ticker,
                created_at=existing.created_at if existing else now,
                updated_at=now,
                name=name,
                category=AssetCategory(category),
                price=price
            )
            self._save_asset(asset)
        return asset

    def get_asset(self, asset_id: str) -> Optional[ExchangeAsset]:
        data = self.storage.load(self.assets_table, asset_id)
        if data:
            return ExchangeAsset.from_dict(data)
        return None

    def require_asset(self, asset_id: str) -> ExchangeAsset:
        asset = self.get_asset(asset_id)
        if not asset:
            raise AssetNotFound(f"Asset {asset_id} not found")
        return asset

    def list_assets(self, category: Optional[AssetCategory] = None) -> List[ExchangeAsset]:
        assets = [ExchangeAsset.from_dict(d) for d in self.storage.load_all(self.assets_table)]
        if category is not None:
            assets = [asset for asset in assets if asset.category == category]
        return assets

    def get_position(self, account_id: str, asset_id: str) -> Optional[PortfolioPosition]:
        data = self.storage.load(self.positions_table, PortfolioPosition.key(account_id, asset_id))
        if data:
            return PortfolioPosition.from_dict(data)
        return None

    def get_portfolio(self, account_id: str) -> List[PortfolioPosition]:
        """Non-empty positions of an account"""
        return [
            position for position in (
                PortfolioPosition.from_dict(d)
                for d in self.storage.find(self.positions_table, {"account_id": account_id})
            )
            if position.quantity > ZERO
        ]

    def trade(
        self,
        operation: Operation,
        account_id: str,
        asset_id: str,
        quantity: Decimal,
        direction: TradeDirection
    ) -> TradeResult:
        """
        Buy or sell `quantity` units at the current price

        Raises:
            InvalidQuantity: If quantity is not positive or the trade is worth under a cent
            AssetNotFound: If the asset is not listed
            InsufficientFundsError: If a buy is not covered by the balance
            InsufficientHoldingsError: If a sell exceeds the position
        """
        quantity = to_decimal(quantity)
        if quantity <= ZERO:
            raise InvalidQuantity("Trade quantity must be positive")
        direction = TradeDirection(direction)

        account = self.account_manager.require_active_account(account_id)
        asset = self.require_asset(asset_id)
        gross = asset.price * quantity
        if gross < CENT:
            raise InvalidQuantity(
                f"Trade of {quantity} {asset.ticker} is worth less than one cent"
            )
        # Rounding to cents always favours the bank
        if direction == TradeDirection.BUY:
            total = quantize_money(gross, ROUND_CEILING)
        else:
            total = quantize_money(gross, ROUND_FLOOR)

        position = self.get_position(account.id, asset.id)
        if not position:
            position = PortfolioPosition(
                id=PortfolioPosition.key(account.id, asset.id),
                created_at=operation.now,
                updated_at=operation.now,
                account_id=account.id,
                asset_id=asset.id,
                quantity=ZERO
            )

        if direction == TradeDirection.BUY:
            account.debit(total)
            position.quantity += quantity
            action = f"Buy {asset.category.value}"
        else:
            if position.quantity < quantity:
                raise InsufficientHoldingsError(
                    f"Cannot sell {quantity} {asset.ticker}: holding {position.quantity}"
                )
            account.credit(total)
            position.quantity -= quantity
            action = f"Sell {asset.category.value}"

        self.account_manager.save_account(account, operation.now)
        position.updated_at = operation.now
        self.storage.save(self.positions_table, position.id, position.to_dict())

        self.ledger.record(
            operation, account.id, action, total, direction == TradeDirection.SELL,
            comment=f"{direction.value.capitalize()} {quantity} {asset.ticker} at {asset.price}",
            details={
                "direction": direction.value,
                "asset_id": asset.id,
                "quantity": str(quantity),
                "price": str(asset.price),
                "total": str(total)
            }
        )

        return TradeResult(
            operation_id=operation.id,
            asset_id=asset.id,
            direction=direction,
            quantity=quantity,
            price=asset.price,
            total=total,
            position=position.quantity,
            balance=account.balance
        )

    def drift_prices(
        self,
        operation: Operation,
        rng: random.Random,
        magnitude: float = 1.0,
        bias: float = 0.01,
        min_price: Decimal = Decimal('0.01')
    ) -> List[PriceChange]:
        """
        Apply one random walk step to every asset

        change% = (u - (0.5 - bias)) * 2 * magnitude with u uniform in [0, 1);
        the new price never drops below min_price.
        """
        magnitude = to_decimal(magnitude)
        midpoint = Decimal('0.5') - to_decimal(bias)
        changes = []
        for asset in self.list_assets():
            u = to_decimal(rng.random())
            change_percent = (u - midpoint) * 2 * magnitude
            new_price = quantize_price(asset.price * (1 + change_percent / 100))
            new_price = max(new_price, min_price)

            changes.append(PriceChange(asset.id, asset.price, new_price))
            asset.price = new_price
            asset.updated_at = operation.now
            self._save_asset(asset)
        return changes

    def _save_asset(self, asset: ExchangeAsset) -> None:
        self.storage.save(self.assets_table, asset.id, asset.to_dict())
