"""
Creditor cash flow endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .dependencies import LendingSystem, get_lending_system, to_http_error
from .schemas import ManualCashFlowRequest, MoneyModel
from ..cashflow import CashFlowCategory, CashFlowEntry, CashFlowType
from ..money import Currency


router = APIRouter()


def _entry_response(entry: CashFlowEntry) -> dict:
    return {
        "id": entry.id,
        "type": entry.type.value,
        "category": entry.category.value,
        "amount": MoneyModel.from_money(entry.amount).model_dump(),
        "description": entry.description,
        "loan_id": entry.loan_id,
        "installment_id": entry.installment_id,
        "user_id": entry.user_id,
        "created_at": entry.created_at.isoformat()
    }


@router.get("/{creditor_id}")
async def get_cash_flow(
    creditor_id: str,
    type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    system: LendingSystem = Depends(get_lending_system)
):
    """Creditor balance and movements, newest first"""
    try:
        flow_type = CashFlowType(type.upper()) if type else None
    except ValueError as e:
        raise to_http_error(e)

    ledger = system.cash_flow_ledger
    entries = ledger.get_entries(creditor_id=creditor_id, flow_type=flow_type, limit=limit, offset=offset)
    balance = ledger.get_balance(creditor_id, Currency[system.config.currency])

    return {
        "creditor_id": creditor_id,
        "balance": MoneyModel.from_money(balance).model_dump(),
        "entries": [_entry_response(entry) for entry in entries]
    }


@router.post("/{creditor_id}", status_code=status.HTTP_201_CREATED)
async def record_manual_entry(
    creditor_id: str,
    request: ManualCashFlowRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Record a deposit, withdrawal or other manual movement"""
    try:
        entry = system.cash_flow_ledger.record_manual_entry(
            creditor_id=creditor_id,
            flow_type=CashFlowType(request.type.upper()),
            category=CashFlowCategory(request.category.upper()),
            amount=request.amount.to_money(),
            user_id=request.user_id,
            description=request.description
        )
    except (KeyError, ValueError) as e:
        raise to_http_error(ValueError(str(e)))
    return _entry_response(entry)
