"""
Loan simulation endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .dependencies import LendingSystem, get_lending_system, to_http_error
from .schemas import SimulateLoanRequest, RecoverPrincipalRequest, MoneyModel
from ..amortization import LOAN_TYPE_LABELS, simulate_loan, recover_principal_from_total
from ..dates import to_local_date
from ..money import Currency


router = APIRouter()


@router.get("/loan-types")
async def list_loan_types():
    """Loan types offered at origination"""
    return {
        "loan_types": [{"value": loan_type.value, "label": label}
                       for loan_type, label in LOAN_TYPE_LABELS.items()]
    }


@router.post("")
async def simulate(
    request: SimulateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Simulate a loan, with due dates when a periodicity and start date are given"""
    periodicity_config = None
    if request.periodicity_id:
        periodicity = system.periodicity_manager.get_periodicity(request.periodicity_id)
        if not periodicity:
            raise HTTPException(status_code=404, detail="Periodicity not found")
        periodicity_config = periodicity.config

    try:
        start_date = to_local_date(request.start_date, system.config.timezone) if request.start_date else None
        simulation = simulate_loan(
            loan_type=request.loan_type,
            requested_amount=request.amount,
            installments=request.installments,
            interest_rate=request.interest_rate,
            periodicity=periodicity_config,
            start_date=start_date,
            currency=Currency[system.config.currency]
        )
    except ValueError as e:
        raise to_http_error(e)

    return {
        "loan_type": simulation.loan_type.value,
        "principal": MoneyModel.from_money(simulation.principal).model_dump(),
        "interest_rate": str(simulation.interest_rate),
        "total_amount": MoneyModel.from_money(simulation.total_amount).model_dump(),
        "total_interest": MoneyModel.from_money(simulation.total_interest).model_dump(),
        "installment_value": MoneyModel.from_money(simulation.installment_value).model_dump(),
        "effective_rate": str(simulation.effective_rate),
        "schedule": [entry.to_dict() for entry in simulation.entries]
    }


@router.post("/recover-principal")
async def recover_principal(request: RecoverPrincipalRequest):
    """Estimate the amount lent from a loan's total repayment amount"""
    try:
        estimate = recover_principal_from_total(
            total_amount=request.total_amount,
            loan_type=request.loan_type,
            installment_count=request.installments,
            interest_rate=request.interest_rate,
            commission_percents=(request.commission, request.creditor_commission)
        )
    except ValueError as e:
        raise to_http_error(e)

    return {
        "principal": str(estimate.rounded),
        "iterations": estimate.iterations,
        "approximate": estimate.approximate
    }
