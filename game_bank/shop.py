"""
Shop Module

Shop inventory and the checkout operation. Checkout consumes balance and
loyalty points, decrements stock and awards new loyalty points on the
subtotal.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import uuid

from .accounts import AccountManager
from .errors import (
    EmptyCart, InvalidAmount, InvalidQuantity, ItemNotFound,
    InsufficientStockError, InsufficientFundsError
)
from .ledger import Ledger, Operation, utc_now
from .money import ZERO, quantize_money, optional_money, loyalty_points_for, format_money
from .storage import StorageInterface, StorageRecord, parse_datetime


@dataclass
class ShopItem(StorageRecord):
    """Shop item with optional discount"""
    name: str
    price: Decimal
    quantity: int
    discount_price: Optional[Decimal] = None
    popularity: int = 0

    def __post_init__(self):
        if self.price < ZERO:
            raise ValueError("Item price cannot be negative")
        if self.discount_price is not None and self.discount_price < ZERO:
            raise ValueError("Discount price cannot be negative")
        if self.quantity < 0:
            raise ValueError("Item quantity cannot be negative")

    @property
    def unit_price(self) -> Decimal:
        """Discount price when present and lower than the list price"""
        if self.discount_price is not None and self.discount_price < self.price:
            return self.discount_price
        return self.price

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShopItem':
        discount = data.get('discount_price')
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            name=data['name'],
            price=Decimal(data['price']),
            quantity=int(data['quantity']),
            discount_price=Decimal(discount) if discount is not None else None,
            popularity=int(data.get('popularity', 0))
        )


@dataclass(frozen=True)
class CartLine:
    item_id: str
    quantity: int


@dataclass
class CheckoutResult:
    operation_id: str
    subtotal: Decimal
    total_charged: Decimal
    points_spent: int
    points_earned: int
    lines: List[Dict[str, Any]]
    balance: Decimal
    loyalty_points: int


def merge_cart(cart: Sequence[CartLine]) -> Dict[str, int]:
    """
    Validate a cart and merge lines for the same item

    Raises:
        EmptyCart: If the cart has no lines
        InvalidQuantity: If a line asks for zero or fewer units
    """
    if not cart:
        raise EmptyCart("Cart is empty")
    merged: Dict[str, int] = {}
    for line in cart:
        if line.quantity <= 0:
            raise InvalidQuantity(f"Quantity for item {line.item_id} must be positive")
        merged[line.item_id] = merged.get(line.item_id, 0) + line.quantity
    return merged


class ShopManager:
    """Shop inventory and checkout"""

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        ledger: Ledger,
        loyalty_divisor: int = 100
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.ledger = ledger
        self.loyalty_divisor = loyalty_divisor
        self.table_name = "shop_items"

    def upsert_item(
        self,
        name: str,
        price: Decimal,
        quantity: int,
        discount_price: Optional[Decimal] = None,
        item_id: Optional[str] = None
    ) -> ShopItem:
        """Create an item or replace its price and stock (admin)"""
        with self.storage.atomic():
            now = utc_now()
            existing = self.get_item(item_id) if item_id else None
            item = ShopItem(
                id=item_id or str(uuid.uuid4()),
                created_at=existing.created_at if existing else now,
                updated_at=now,
                name=name,
                price=quantize_money(price),
                quantity=quantity,
                discount_price=optional_money(discount_price),
                popularity=existing.popularity if existing else 0
            )
            self._save_item(item)
        return item

    def get_item(self, item_id: str) -> Optional[ShopItem]:
        data = self.storage.load(self.table_name, item_id)
        if data:
            return ShopItem.from_dict(data)
        return None

    def list_items(self) -> List[ShopItem]:
        return [ShopItem.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def checkout(
        self,
        operation: Operation,
        account_id: str,
        cart: Sequence[CartLine],
        points_to_spend: int = 0
    ) -> CheckoutResult:
        """
        Buy every cart line in one unit

        Must run inside an atomic unit; raising leaves stock, balance and
        the ledger untouched.
        """
        merged = merge_cart(cart)
        if points_to_spend < 0:
            raise InvalidAmount("Loyalty points to spend cannot be negative")

        account = self.account_manager.require_active_account(account_id)

        items: List[ShopItem] = []
        subtotal = ZERO
        for item_id, quantity in merged.items():
            item = self.get_item(item_id)
            if not item:
                raise ItemNotFound(f"Shop item {item_id} not found")
            if item.quantity < quantity:
                raise InsufficientStockError(
                    f"Not enough '{item.name}' in stock: requested {quantity}, available {item.quantity}"
                )
            items.append(item)
            subtotal += item.unit_price * quantity
        subtotal = quantize_money(subtotal)

        if Decimal(points_to_spend) > subtotal:
            raise InvalidAmount(
                f"Cannot spend {points_to_spend} points on a subtotal of {format_money(subtotal)}"
            )
        total = quantize_money(subtotal - Decimal(points_to_spend))
        if account.loyalty_points < points_to_spend or account.balance < total:
            raise InsufficientFundsError("Insufficient funds or loyalty points")

        points_earned = loyalty_points_for(subtotal, self.loyalty_divisor)
        account.debit(total)
        account.spend_points(points_to_spend)
        account.loyalty_points += points_earned
        self.account_manager.save_account(account, operation.now)

        lines = []
        for item in items:
            quantity = merged[item.id]
            item.quantity -= quantity
            item.popularity += quantity
            item.updated_at = operation.now
            self._save_item(item)
            lines.append({
                "item_id": item.id,
                "item_name": item.name,
                "quantity": quantity,
                "price": str(item.unit_price)
            })

        self.ledger.record(
            operation, account.id, "Shop purchase", total, False,
            comment=f"Used {points_to_spend} loyalty points",
            details={"items": lines, "subtotal": str(subtotal)}
        )

        return CheckoutResult(
            operation_id=operation.id,
            subtotal=subtotal,
            total_charged=total,
            points_spent=points_to_spend,
            points_earned=points_earned,
            lines=lines,
            balance=account.balance,
            loyalty_points=account.loyalty_points
        )

    def _save_item(self, item: ShopItem) -> None:
        self.storage.save(self.table_name, item.id, item.to_dict())
