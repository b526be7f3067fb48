"""
Account registration and read endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .schemas import RegisterAccountRequest, to_response
from .system import BankSystem, get_bank_system


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def register_account(request: RegisterAccountRequest, system: BankSystem = Depends(get_bank_system)):
    """Register a player account (no opening funds, never admin)"""
    account = system.account_manager.create_account(handle=request.handle, team_id=request.team_id)
    return to_response(account)


@router.get("/{account_id}")
def get_account(account_id: str, system: BankSystem = Depends(get_bank_system)):
    account = system.account_manager.require_account(account_id)
    return to_response(account)


@router.get("/{account_id}/ledger")
def get_ledger(
    account_id: str,
    limit: Optional[int] = Query(None, ge=0),
    system: BankSystem = Depends(get_bank_system)
):
    """Ledger history, most recent first"""
    system.account_manager.require_account(account_id)
    return to_response(system.ledger.get_entries_for_account(account_id, limit))


@router.get("/{account_id}/portfolio")
def get_portfolio(account_id: str, system: BankSystem = Depends(get_bank_system)):
    system.account_manager.require_account(account_id)
    positions = system.exchange_manager.get_portfolio(account_id)
    return to_response(positions)


@router.get("/{account_id}/loan")
def get_loan(account_id: str, system: BankSystem = Depends(get_bank_system)):
    system.account_manager.require_account(account_id)
    loan = system.loan_manager.get_loan(account_id)
    return {"loan": to_response(loan) if loan else None}


@router.get("/{account_id}/insurance")
def get_insurance(account_id: str, system: BankSystem = Depends(get_bank_system)):
    system.account_manager.require_account(account_id)
    policy = system.insurance_manager.get_policy(account_id)
    return {
        "policy": to_response(policy) if policy else None,
        "is_covered": system.insurance_manager.is_covered(account_id)
    }


@router.get("/{account_id}/notifications")
def get_notifications(
    account_id: str,
    unread_only: bool = False,
    system: BankSystem = Depends(get_bank_system)
):
    system.account_manager.require_account(account_id)
    notifications = system.notification_store.get_notifications(account_id, unread_only)
    return to_response(notifications)


@router.post("/{account_id}/notifications/{notification_id}/read")
def mark_notification_read(
    account_id: str,
    notification_id: str,
    system: BankSystem = Depends(get_bank_system)
):
    if not system.notification_store.mark_read(notification_id, account_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"notification_id": notification_id, "is_read": True}
