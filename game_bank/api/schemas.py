"""
Pydantic schemas for API requests, and response serialization
"""

from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..storage import to_storable


def to_response(value: Any) -> Any:
    """Turn result dataclasses (or lists of them) into JSON-safe dicts"""
    if isinstance(value, list):
        return [to_response(item) for item in value]
    if isinstance(value, dict):
        return {key: to_response(item) for key, item in value.items()}
    if is_dataclass(value) and not isinstance(value, type):
        return to_storable(asdict(value))
    return to_storable(value)


# Operation schemas
class TransferRequest(BaseModel):
    sender_id: str
    recipient_id: str
    amount: str = Field(..., description="Decimal amount as string")


class CartLineModel(BaseModel):
    item_id: str
    quantity: int


class CheckoutRequest(BaseModel):
    account_id: str
    cart: List[CartLineModel]
    loyalty_points_to_spend: int = 0


class AmountRequest(BaseModel):
    account_id: str
    amount: str = Field(..., description="Decimal amount as string")


class BuyInsuranceRequest(BaseModel):
    account_id: str
    option_id: str


class TradeRequest(BaseModel):
    account_id: str
    asset_id: str = Field(..., description="Asset ticker")
    quantity: str = Field(..., description="Decimal quantity as string")
    direction: str = Field(..., description="buy or sell")


# Account schemas
class RegisterAccountRequest(BaseModel):
    """Self-registration: opening funds, points and admin rights are admin-only"""
    handle: str
    team_id: Optional[str] = None

    class Config:
        extra = "forbid"


class CreateAccountRequest(BaseModel):
    handle: str
    initial_balance: str = "0"
    loyalty_points: int = 0
    team_id: Optional[str] = None
    is_admin: bool = False


class BlockAccountRequest(BaseModel):
    blocked: bool


class AssignTeamRequest(BaseModel):
    team_id: Optional[str] = None


# Admin schemas
class StartAuctionRequest(BaseModel):
    end_time: Optional[datetime] = Field(None, description="ISO timestamp; omit for no auto-close")
    lot: str = ""


class LoanConfigRequest(BaseModel):
    max_amount: Optional[str] = None
    interest_rate: Optional[str] = Field(None, description="Percent, e.g. '5'")
    auto_approve: Optional[bool] = None


class ShopItemRequest(BaseModel):
    name: str
    price: str
    quantity: int
    discount_price: Optional[str] = None
    item_id: Optional[str] = None


class ExchangeAssetRequest(BaseModel):
    ticker: str
    name: str
    category: str = Field(..., description="company or crypto")
    price: str


class InsuranceOptionRequest(BaseModel):
    label: str
    cost: str
    duration: str = Field(..., description="'<n>h' or '<n>d'")
    option_id: Optional[str] = None
