"""
Admin endpoints (accounts, auction control, loan terms, catalogues, settlement)
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from .schemas import (
    AssignTeamRequest, BlockAccountRequest, CreateAccountRequest, ExchangeAssetRequest,
    InsuranceOptionRequest, LoanConfigRequest, ShopItemRequest, StartAuctionRequest,
    to_response
)
from .system import BankSystem, get_bank_system
from ..exchange import AssetCategory
from ..errors import ValidationError
from ..money import to_decimal


router = APIRouter()


def _decimal(value: str, field_name: str):
    try:
        return to_decimal(value)
    except ValueError:
        raise ValidationError(f"{field_name} '{value}' is not a number")


# Accounts

@router.get("/accounts")
def list_accounts(system: BankSystem = Depends(get_bank_system)):
    """All accounts with balances, points and flags, ordered by handle"""
    accounts = sorted(system.account_manager.list_accounts(), key=lambda a: a.handle.lower())
    return to_response(accounts)


@router.post("/accounts", status_code=status.HTTP_201_CREATED)
def create_account(request: CreateAccountRequest, system: BankSystem = Depends(get_bank_system)):
    """Create an account with opening funds, points or admin rights"""
    account = system.account_manager.create_account(
        handle=request.handle,
        initial_balance=_decimal(request.initial_balance, "initial_balance"),
        loyalty_points=request.loyalty_points,
        is_admin=request.is_admin,
        team_id=request.team_id
    )
    return to_response(account)


@router.post("/accounts/{account_id}/block")
def block_account(
    account_id: str,
    request: BlockAccountRequest,
    system: BankSystem = Depends(get_bank_system)
):
    account = system.account_manager.set_blocked(account_id, request.blocked)
    return to_response(account)


@router.post("/accounts/{account_id}/team")
def assign_team(
    account_id: str,
    request: AssignTeamRequest,
    system: BankSystem = Depends(get_bank_system)
):
    account = system.account_manager.assign_team(account_id, request.team_id)
    return to_response(account)


# Auction

@router.post("/auction/start")
def start_auction(request: StartAuctionRequest, system: BankSystem = Depends(get_bank_system)):
    """Start a fresh auction; bids and winner of the previous one are cleared"""
    state = system.transaction_processor.start_auction(request.end_time, request.lot)
    return state.to_dict()


@router.post("/auction/close")
def close_auction(system: BankSystem = Depends(get_bank_system)):
    state = system.transaction_processor.close_auction()
    return {"auction": state.to_dict() if state else None}


# Loans

@router.get("/loans/config")
def get_loan_config(system: BankSystem = Depends(get_bank_system)) -> Dict[str, Any]:
    return system.loan_manager.get_config().to_dict()


@router.put("/loans/config")
def update_loan_config(request: LoanConfigRequest, system: BankSystem = Depends(get_bank_system)):
    updated = system.loan_manager.set_config(
        max_amount=_decimal(request.max_amount, "max_amount") if request.max_amount is not None else None,
        interest_rate=_decimal(request.interest_rate, "interest_rate") if request.interest_rate is not None else None,
        auto_approve=request.auto_approve
    )
    return updated.to_dict()


@router.get("/loans/requests")
def list_loan_requests(system: BankSystem = Depends(get_bank_system)):
    return to_response(system.loan_manager.list_pending_requests())


@router.post("/loans/requests/{request_id}/approve")
def approve_loan_request(request_id: str, system: BankSystem = Depends(get_bank_system)):
    return to_response(system.transaction_processor.approve_loan_request(request_id))


@router.post("/loans/requests/{request_id}/reject")
def reject_loan_request(request_id: str, system: BankSystem = Depends(get_bank_system)):
    return to_response(system.transaction_processor.reject_loan_request(request_id))


# Catalogues

@router.post("/shop/items", status_code=status.HTTP_201_CREATED)
def upsert_shop_item(request: ShopItemRequest, system: BankSystem = Depends(get_bank_system)):
    item = system.shop_manager.upsert_item(
        name=request.name,
        price=_decimal(request.price, "price"),
        quantity=request.quantity,
        discount_price=_decimal(request.discount_price, "discount_price") if request.discount_price else None,
        item_id=request.item_id
    )
    return to_response(item)


@router.post("/exchange/assets", status_code=status.HTTP_201_CREATED)
def register_asset(request: ExchangeAssetRequest, system: BankSystem = Depends(get_bank_system)):
    try:
        category = AssetCategory(request.category)
    except ValueError:
        raise ValidationError(f"Unknown asset category '{request.category}'")
    asset = system.exchange_manager.register_asset(
        ticker=request.ticker,
        name=request.name,
        category=category,
        price=_decimal(request.price, "price")
    )
    return to_response(asset)


@router.post("/insurance/options", status_code=status.HTTP_201_CREATED)
def add_insurance_option(request: InsuranceOptionRequest, system: BankSystem = Depends(get_bank_system)):
    option = system.insurance_manager.add_option(
        label=request.label,
        cost=_decimal(request.cost, "cost"),
        duration=request.duration,
        option_id=request.option_id
    )
    return to_response(option)


# Settlement

@router.post("/settlement/run")
def run_settlement(system: BankSystem = Depends(get_bank_system)):
    """Run one settlement tick now"""
    report = system.settlement_scheduler.run_tick()
    return {
        "operation_id": report.operation_id,
        "ran_at": report.ran_at.isoformat(),
        "matured_deposits": to_response(report.matured_deposits),
        "auction_closed": report.closed_auction is not None,
        "price_changes": to_response(report.price_changes),
        "notifications_sent": report.notifications_sent
    }
