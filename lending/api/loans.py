"""
Loan endpoints
"""

from datetime import datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, status

from .dependencies import LendingSystem, get_lending_system, to_http_error
from .schemas import (
    CreateLoanRequest, PayInstallmentRequest, ApplyFineRequest, SettleLoanRequest, RenewLoanRequest,
    MoneyModel
)
from ..dates import to_local_date
from ..errors import LendingError
from ..loans import Installment, Loan


router = APIRouter()


def _loan_response(loan: Loan) -> dict:
    return {
        "id": loan.id,
        "user_id": loan.user_id,
        "customer_id": loan.customer_id,
        "customer_name": loan.customer_name,
        "creditor_id": loan.creditor_id,
        "loan_type": loan.loan_type.value,
        "status": loan.status.value,
        "principal": MoneyModel.from_money(loan.principal).model_dump() if loan.principal is not None else None,
        "total_amount": MoneyModel.from_money(loan.total_amount).model_dump(),
        "installment_value": MoneyModel.from_money(loan.installment_value).model_dump(),
        "interest_rate": str(loan.interest_rate),
        "installments": loan.installments,
        "periodicity_id": loan.periodicity_id,
        "start_date": loan.start_date.isoformat(),
        "next_payment_date": loan.next_payment_date.isoformat() if loan.next_payment_date else None,
        "commission": str(loan.commission),
        "creditor_commission": str(loan.creditor_commission)
    }


def _installment_response(installment: Installment) -> dict:
    return {
        "id": installment.id,
        "loan_id": installment.loan_id,
        "installment_number": installment.installment_number,
        "due_date": installment.due_date.isoformat(),
        "amount": MoneyModel.from_money(installment.amount).model_dump(),
        "fine_amount": MoneyModel.from_money(installment.fine_amount).model_dump(),
        "paid_amount": MoneyModel.from_money(installment.paid_amount).model_dump(),
        "status": installment.status.value,
        "paid_at": installment.paid_at.isoformat() if installment.paid_at else None
    }


def _payment_datetime(value: Optional[str], tz: str) -> Optional[datetime]:
    """A bare date is taken as midnight local time"""
    if not value:
        return None
    if len(value.strip()) == 10:
        return datetime.combine(to_local_date(value, tz), time.min, tzinfo=ZoneInfo(tz))
    return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Originate a loan and generate its installments"""
    try:
        loan = system.loan_manager.create_loan(
            user_id=request.user_id,
            customer_id=request.customer_id,
            customer_name=request.customer_name,
            creditor_id=request.creditor_id,
            loan_type=request.loan_type,
            amount=request.amount,
            amount_is_total=request.amount_is_total,
            installments=request.installments,
            interest_rate=request.interest_rate,
            periodicity_id=request.periodicity_id,
            start_date=to_local_date(request.start_date, system.config.timezone),
            commission=request.commission,
            creditor_commission=request.creditor_commission
        )
    except (LendingError, ValueError) as e:
        raise to_http_error(e)

    return {
        "loan_id": loan.id,
        "status": loan.status.value,
        "total_amount": MoneyModel.from_money(loan.total_amount).model_dump(),
        "message": "Loan created successfully"
    }


@router.get("/users/{user_id}")
async def get_user_loans(
    user_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Loans owned by an operator"""
    return {"loans": [_loan_response(loan) for loan in system.loan_manager.get_user_loans(user_id)]}


@router.post("/mark-overdue")
async def mark_overdue(system: LendingSystem = Depends(get_lending_system)):
    """Flag pending installments past their due date"""
    return {"updated": system.loan_manager.mark_overdue()}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details"""
    loan = system.loan_manager.get_loan(loan_id)
    if not loan:
        raise to_http_error(LookupError("Loan not found"))
    return _loan_response(loan)


@router.get("/{loan_id}/installments")
async def get_installments(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Installments of a loan ordered by number"""
    if not system.loan_manager.get_loan(loan_id):
        raise to_http_error(LookupError("Loan not found"))
    return {
        "installments": [_installment_response(i) for i in system.loan_manager.get_installments(loan_id)]
    }


@router.post("/{loan_id}/installments/generate", status_code=status.HTTP_201_CREATED)
async def generate_installments(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Generate the installments of a loan created without them"""
    try:
        installments = system.loan_manager.generate_installments(loan_id)
    except (LendingError, ValueError) as e:
        raise to_http_error(e)
    return {"installments": [_installment_response(i) for i in installments]}


@router.post("/{loan_id}/installments/{installment_id}/pay")
async def pay_installment(
    loan_id: str,
    installment_id: str,
    request: PayInstallmentRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Register an installment payment"""
    try:
        installment = system.loan_manager.pay_installment(
            loan_id=loan_id,
            installment_id=installment_id,
            amount=request.amount,
            payment_date=_payment_datetime(request.payment_date, system.config.timezone),
            fine_amount=request.fine_amount
        )
    except (LendingError, ValueError) as e:
        raise to_http_error(e)
    return _installment_response(installment)


@router.post("/{loan_id}/installments/{installment_id}/fine")
async def apply_fine(
    loan_id: str,
    installment_id: str,
    request: ApplyFineRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Add a fine to an unpaid installment"""
    try:
        installment = system.loan_manager.apply_fine(
            loan_id, installment_id, request.fine_amount, reason=request.reason
        )
    except (LendingError, ValueError) as e:
        raise to_http_error(e)
    return _installment_response(installment)


@router.post("/{loan_id}/installments/{installment_id}/reverse")
async def reverse_payment(
    loan_id: str,
    installment_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Undo an installment payment"""
    try:
        installment = system.loan_manager.reverse_payment(loan_id, installment_id)
    except (LendingError, ValueError) as e:
        raise to_http_error(e)
    return _installment_response(installment)


@router.post("/{loan_id}/cancel")
async def cancel_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Cancel a loan"""
    try:
        loan = system.loan_manager.cancel_loan(loan_id)
    except (LendingError, ValueError) as e:
        raise to_http_error(e)
    return _loan_response(loan)


@router.post("/{loan_id}/pay-all")
async def settle_loan(
    loan_id: str,
    request: Optional[SettleLoanRequest] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Pay off every open installment of a loan"""
    payment_date = request.payment_date if request else None
    try:
        settlement = system.loan_manager.settle_loan(
            loan_id, payment_date=_payment_datetime(payment_date, system.config.timezone)
        )
    except (LendingError, ValueError) as e:
        raise to_http_error(e)

    return {
        "message": "Loan settled successfully",
        "total_amount": MoneyModel.from_money(settlement.total_amount).model_dump(),
        "total_paid": MoneyModel.from_money(settlement.total_paid).model_dump(),
        "remaining_amount": MoneyModel.from_money(settlement.remaining_amount).model_dump(),
        "settled_installments": [_installment_response(i) for i in settlement.settled_installments],
        "loan": _loan_response(settlement.loan)
    }


@router.post("/{loan_id}/renew", status_code=status.HTTP_201_CREATED)
async def renew_loan(
    loan_id: str,
    request: RenewLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Open a new loan with the terms of a completed one"""
    try:
        loan = system.loan_manager.renew_loan(
            loan_id, to_local_date(request.start_date, system.config.timezone)
        )
    except (LendingError, ValueError) as e:
        raise to_http_error(e)
    return _loan_response(loan)
