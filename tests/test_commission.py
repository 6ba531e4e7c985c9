"""
Test suite for commission module

Tests the commission base of each loan type, the split between intermediary,
creditor and manager, and the cash flow movements built from it.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, date

from lending.amortization import LoanType
from lending.cashflow import CashFlowCategory, CashFlowType
from lending.commission import (
    AmortizationCommissionCalculator, CashFlowMovementBuilder, CommissionCalculator,
    SimpleInterestCommissionCalculator
)
from lending.loans import Installment, Loan
from lending.money import Money, Currency


def brl(amount: str) -> Money:
    return Money(Decimal(amount), Currency.BRL)


def make_loan(loan_type=LoanType.SAC, principal='1000', total='1300', rate='10',
              installments=5, commission='3', creditor_commission='2') -> Loan:
    now = datetime.now(timezone.utc)
    return Loan(
        id="loan-1",
        created_at=now,
        updated_at=now,
        user_id="operator-1",
        customer_id="customer-1",
        loan_type=loan_type,
        principal=brl(principal) if principal is not None else None,
        total_amount=brl(total),
        interest_rate=Decimal(rate),
        installments=installments,
        installment_value=brl('300'),
        periodicity_id="monthly",
        start_date=date(2024, 1, 10),
        creditor_id="creditor-1",
        commission=Decimal(commission),
        creditor_commission=Decimal(creditor_commission)
    )


def make_installment(number: int, amount: str) -> Installment:
    now = datetime.now(timezone.utc)
    return Installment(
        id=f"installment-{number}",
        created_at=now,
        updated_at=now,
        loan_id="loan-1",
        installment_number=number,
        due_date=date(2024, number, 10),
        amount=brl(amount)
    )


class TestCalculatorSelection:
    """Test the calculator factory"""

    @pytest.mark.parametrize("loan_type", [LoanType.SIMPLE_INTEREST, LoanType.RECURRING_SIMPLE_INTEREST])
    def test_simple_interest_types(self, loan_type):
        """Test simple interest loans use the installment amount"""
        calculator = CommissionCalculator.for_loan(make_loan(loan_type), make_installment(1, '300'))
        assert isinstance(calculator, SimpleInterestCommissionCalculator)

    @pytest.mark.parametrize("loan_type", [LoanType.PRICE, LoanType.SAC, LoanType.INTEREST_ONLY])
    def test_amortization_types(self, loan_type):
        """Test the other loan types use the outstanding principal"""
        calculator = CommissionCalculator.for_loan(make_loan(loan_type), make_installment(1, '300'))
        assert isinstance(calculator, AmortizationCommissionCalculator)


class TestAmortizationCommission:
    """Test commissions on the outstanding principal"""

    def test_first_installment_uses_full_principal(self):
        """Test installment 1 is based on the amount lent"""
        result = CommissionCalculator.for_loan(make_loan(), make_installment(1, '300')).calculate()

        assert result.calculation_base == brl('1000')
        assert result.intermediator_commission == brl('30')
        assert result.creditor_commission == brl('20')
        assert result.manager_commission == brl('50')
        assert result.creditor_return == brl('200')
        assert result.calculation_method == "Valor Empréstimo (R$ 1.000,00)"

    @pytest.mark.parametrize("number,amount,base", [
        (2, '280', '800'),
        (3, '260', '600'),
        (4, '240', '400'),
        (5, '220', '200'),
    ])
    def test_later_installments_use_balance(self, number, amount, base):
        """Test installment k is based on the principal minus earlier amortization"""
        result = CommissionCalculator.for_loan(make_loan(), make_installment(number, amount)).calculate()

        assert result.calculation_base == brl(base)
        assert result.creditor_return == brl('200')
        assert result.calculation_method.startswith("Saldo Devedor")

    def test_principal_recovered_when_unknown(self):
        """Test a loan stored by its total recovers the principal first"""
        loan = make_loan(principal=None, total='1200', rate='60', installments=4,
                         commission='10', creditor_commission='0')
        calculator = CommissionCalculator.for_loan(loan, make_installment(2, '300'))

        assert calculator.original_principal() == Decimal('750.00')
        result = calculator.calculate()
        assert result.calculation_base == brl('562.50')
        assert result.intermediator_commission == brl('56.25')

    def test_manager_rate(self):
        """Test the manager keeps the rest of the rate"""
        calculator = CommissionCalculator.for_loan(make_loan(), make_installment(1, '300'))
        assert calculator.manager_rate == Decimal('5')


class TestSimpleInterestCommission:
    """Test commissions on the installment amount"""

    def test_base_is_installment_amount(self):
        """Test the split of a simple interest installment"""
        loan = make_loan(LoanType.SIMPLE_INTEREST, total='1200', rate='20',
                         installments=4, commission='5', creditor_commission='5')
        result = CommissionCalculator.for_loan(loan, make_installment(3, '300')).calculate()

        assert result.calculation_base == brl('300')
        assert result.intermediator_commission == brl('15')
        assert result.creditor_commission == brl('15')
        assert result.manager_commission == brl('30')
        assert result.creditor_return == brl('240')
        assert result.calculation_method == "Valor da Parcela"


class TestCashFlowMovementBuilder:
    """Test movements built from a commission split"""

    def test_build_all(self):
        """Test one movement per non-zero share"""
        loan = make_loan()
        installment = make_installment(1, '300')
        result = CommissionCalculator.for_loan(loan, installment).calculate()

        movements = CashFlowMovementBuilder(loan, installment, result, "Maria").build_all("creditor-1", "operator-1")
        by_category = {m.category: m for m in movements}

        assert len(movements) == 4
        assert by_category[CashFlowCategory.INTERMEDIATOR_COMMISSION].type == CashFlowType.DEBIT
        assert by_category[CashFlowCategory.INTERMEDIATOR_COMMISSION].amount == brl('30')
        assert by_category[CashFlowCategory.COMMISSION].type == CashFlowType.CREDIT
        assert by_category[CashFlowCategory.MANAGER_COMMISSION].amount == brl('50')
        assert by_category[CashFlowCategory.LOAN_RETURN].amount == brl('200')
        assert all(m.installment_id == installment.id and m.loan_id == loan.id for m in movements)
        assert "Parcela 1 - Maria" in by_category[CashFlowCategory.LOAN_RETURN].description

    def test_zero_commissions_skipped(self):
        """Test shares of zero produce no movement"""
        loan = make_loan(commission='0', creditor_commission='0')
        installment = make_installment(1, '300')
        result = CommissionCalculator.for_loan(loan, installment).calculate()

        movements = CashFlowMovementBuilder(loan, installment, result, "Maria").build_all("creditor-1", "operator-1")
        assert {m.category for m in movements} == {
            CashFlowCategory.MANAGER_COMMISSION, CashFlowCategory.LOAN_RETURN
        }

    def test_route_in_intermediator_description(self):
        """Test the collection route is named in the intermediary movement"""
        loan = make_loan()
        installment = make_installment(1, '300')
        result = CommissionCalculator.for_loan(loan, installment).calculate()

        builder = CashFlowMovementBuilder(loan, installment, result, "Maria", route_description="Rota Centro")
        movement = builder.build_intermediator_commission("creditor-1", "operator-1")
        assert "Rota Centro" in movement.description
