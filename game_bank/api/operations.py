"""
Money-moving operation endpoints
"""

from fastapi import APIRouter, Depends

from .schemas import (
    AmountRequest, BuyInsuranceRequest, CheckoutRequest, TradeRequest,
    TransferRequest, to_response
)
from .system import BankSystem, get_bank_system
from ..shop import CartLine


router = APIRouter()


@router.post("/transfers")
def transfer(request: TransferRequest, system: BankSystem = Depends(get_bank_system)):
    """Transfer money between two accounts"""
    result = system.transaction_processor.transfer(
        request.sender_id, request.recipient_id, request.amount
    )
    return to_response(result)


@router.post("/shop/checkout")
def checkout(request: CheckoutRequest, system: BankSystem = Depends(get_bank_system)):
    """Buy a cart of shop items"""
    cart = [CartLine(line.item_id, line.quantity) for line in request.cart]
    result = system.transaction_processor.checkout(
        request.account_id, cart, request.loyalty_points_to_spend
    )
    return to_response(result)


@router.post("/deposits")
def open_deposit(request: AmountRequest, system: BankSystem = Depends(get_bank_system)):
    result = system.transaction_processor.open_deposit(request.account_id, request.amount)
    return to_response(result)


@router.post("/loans/request")
def request_loan(request: AmountRequest, system: BankSystem = Depends(get_bank_system)):
    result = system.transaction_processor.request_loan(request.account_id, request.amount)
    return to_response(result)


@router.post("/loans/repay")
def repay_loan(request: AmountRequest, system: BankSystem = Depends(get_bank_system)):
    result = system.transaction_processor.repay_loan(request.account_id, request.amount)
    return to_response(result)


@router.post("/insurance/buy")
def buy_insurance(request: BuyInsuranceRequest, system: BankSystem = Depends(get_bank_system)):
    result = system.transaction_processor.buy_insurance(request.account_id, request.option_id)
    return to_response(result)


@router.post("/auction/bids")
def place_bid(request: AmountRequest, system: BankSystem = Depends(get_bank_system)):
    """Bid on the running auction; the amount is held until outbid"""
    result = system.transaction_processor.place_bid(request.account_id, request.amount)
    return to_response(result)


@router.post("/exchange/trade")
def trade_asset(request: TradeRequest, system: BankSystem = Depends(get_bank_system)):
    result = system.transaction_processor.trade_asset(
        request.account_id, request.asset_id, request.quantity, request.direction
    )
    return to_response(result)
