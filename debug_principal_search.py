#!/usr/bin/env python3

"""Debug script for principal recovery and commission bases"""

from decimal import Decimal
from datetime import date
from lending.amortization import LoanType, compute_schedule, recover_principal_from_total
from lending.cashflow import CashFlowLedger
from lending.commission import CommissionCalculator
from lending.loans import LoanManager
from lending.periodicity import PeriodicityManager
from lending.storage import InMemoryStorage

def main():
    # A loan created from its total: R$ 1.350,00 at 35%, 5 installments
    total = Decimal('1350.00')
    rate = Decimal('35')

    estimate = recover_principal_from_total(total, LoanType.SAC, 5, rate)
    print(f"Total: {total}  Rate: {rate}%")
    print(f"Recovered principal: {estimate.principal:.4f} (rounded {estimate.rounded})")
    print(f"Iterations: {estimate.iterations}  Approximate: {estimate.approximate}")
    print(f"Expected (total / 1.35): {total / Decimal('1.35'):.4f}")
    print()

    # Commission bases for a SAC loan of R$ 1.000,00
    schedule = compute_schedule(LoanType.SAC, Decimal('1000'), Decimal('10'), 5)
    for entry in schedule:
        print(f"#{entry.installment_number}: principal={entry.principal_amount.to_string()} "
              f"interest={entry.interest_amount.to_string()} balance={entry.remaining_balance.to_string()}")
    print()

    storage = InMemoryStorage()
    periodicity_manager = PeriodicityManager(storage)
    periodicity_manager.seed_defaults()
    monthly = periodicity_manager.get_periodicity_by_name("Mensal")
    loan_manager = LoanManager(storage, periodicity_manager, CashFlowLedger(storage))

    loan = loan_manager.create_loan(
        user_id="debug",
        customer_id="customer-1",
        loan_type=LoanType.SAC,
        amount=Decimal('1000'),
        installments=5,
        interest_rate=Decimal('10'),
        periodicity_id=monthly.id,
        start_date=date(2024, 1, 10),
        creditor_id="creditor-1",
        commission=Decimal('3'),
        creditor_commission=Decimal('2')
    )

    for installment in loan_manager.get_installments(loan.id):
        result = CommissionCalculator.for_loan(loan, installment).calculate()
        print(f"Installment {installment.installment_number} ({installment.due_date}): "
              f"amount={installment.amount.to_string()} base={result.calculation_base.to_string()} "
              f"intermediator={result.intermediator_commission.to_string()} "
              f"creditor={result.creditor_commission.to_string()} "
              f"manager={result.manager_commission.to_string()} "
              f"return={result.creditor_return.to_string()}")


if __name__ == "__main__":
    main()
