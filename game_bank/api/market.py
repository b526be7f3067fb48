"""
Market, shop and catalogue read endpoints
"""

from fastapi import APIRouter, Depends

from .schemas import to_response
from .system import BankSystem, get_bank_system


router = APIRouter()


@router.get("/market")
def get_market_snapshot(system: BankSystem = Depends(get_bank_system)):
    """Auction state with the current highest bid, and assets by category"""
    snapshot = system.transaction_processor.get_market_snapshot()
    auction = None
    if snapshot.auction:
        auction = snapshot.auction.to_dict()
        auction["highest_bid"] = str(snapshot.highest_bid)
    return {
        "auction": auction,
        "assets": to_response(snapshot.assets)
    }


@router.get("/shop/items")
def list_shop_items(system: BankSystem = Depends(get_bank_system)):
    return to_response(system.shop_manager.list_items())


@router.get("/insurance/options")
def list_insurance_options(system: BankSystem = Depends(get_bank_system)):
    return to_response(system.insurance_manager.list_options())
