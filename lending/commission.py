"""
Commission Module

Splits the interest of a paid installment between the intermediary, the
creditor and the manager, and turns the split into cash flow movements.

Simple-interest loans use the installment amount as the commission base.
Every other loan type uses the outstanding principal: the full amount lent
for the first installment, and for installment k the principal minus the
amortization of installments 1..k-1.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional
import logging

from .amortization import (
    SIMPLE_INTEREST_TYPES, compute_schedule, recover_principal_from_total
)
from .cashflow import CashFlowCategory, CashFlowMovement, CashFlowType
from .money import Money, round_cents

if TYPE_CHECKING:
    from .loans import Installment, Loan


logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')


@dataclass(frozen=True)
class CommissionResult:
    """Commission split of one installment"""
    intermediator_commission: Money
    creditor_commission: Money
    manager_commission: Money
    creditor_return: Money
    calculation_base: Money
    calculation_method: str


class CommissionCalculator(ABC):
    """Base class; use CommissionCalculator.for_loan to pick the implementation"""

    def __init__(self, loan: 'Loan', installment: 'Installment'):
        self.loan = loan
        self.installment = installment

    @staticmethod
    def for_loan(loan: 'Loan', installment: 'Installment') -> 'CommissionCalculator':
        if loan.loan_type in SIMPLE_INTEREST_TYPES:
            return SimpleInterestCommissionCalculator(loan, installment)
        return AmortizationCommissionCalculator(loan, installment)

    @property
    def manager_rate(self) -> Decimal:
        return self.loan.interest_rate - self.loan.commission - self.loan.creditor_commission

    @abstractmethod
    def calculation_base(self) -> Money:
        """Amount the commission percents apply to"""

    @abstractmethod
    def calculation_method(self, base: Money) -> str:
        """Label describing the base, carried into movement descriptions"""

    def calculate(self) -> CommissionResult:
        base = self.calculation_base()

        intermediator = base * (self.loan.commission / HUNDRED)
        creditor = base * (self.loan.creditor_commission / HUNDRED)
        manager = base * (self.manager_rate / HUNDRED)
        creditor_return = self.installment.amount - intermediator - creditor - manager

        logger.debug(
            f"Installment {self.installment.installment_number} of loan {self.loan.id}: "
            f"base={base.to_string()} intermediator={intermediator.to_string()} "
            f"creditor={creditor.to_string()} manager={manager.to_string()}"
        )

        return CommissionResult(
            intermediator_commission=intermediator,
            creditor_commission=creditor,
            manager_commission=manager,
            creditor_return=creditor_return,
            calculation_base=base,
            calculation_method=self.calculation_method(base)
        )


class SimpleInterestCommissionCalculator(CommissionCalculator):
    """Commission on the installment amount"""

    def calculation_base(self) -> Money:
        return self.installment.amount

    def calculation_method(self, base: Money) -> str:
        return "Valor da Parcela"


class AmortizationCommissionCalculator(CommissionCalculator):
    """Commission on the outstanding principal"""

    def original_principal(self) -> Decimal:
        """The loan's principal, recovered from its total when not stored"""
        if self.loan.principal is not None:
            return self.loan.principal.amount

        estimate = recover_principal_from_total(
            total_amount=self.loan.total_amount.amount,
            loan_type=self.loan.loan_type,
            installment_count=self.loan.installments,
            interest_rate=self.loan.interest_rate,
            commission_percents=(self.loan.commission, self.loan.creditor_commission)
        )
        return round_cents(estimate.principal)

    def calculation_base(self) -> Money:
        principal = self.original_principal()
        currency = self.loan.total_amount.currency
        number = self.installment.installment_number

        if number == 1:
            return Money(principal, currency)

        schedule = compute_schedule(
            self.loan.loan_type, principal, self.loan.interest_rate,
            self.loan.installments, currency
        )
        amortized = Money.sum(
            (entry.principal_amount for entry in schedule if entry.installment_number < number),
            currency
        )
        return Money(principal, currency) - amortized

    def calculation_method(self, base: Money) -> str:
        if self.installment.installment_number == 1:
            return f"Valor Empréstimo ({base.to_string('pt_BR')})"
        return f"Saldo Devedor ({base.to_string('pt_BR')})"


class CashFlowMovementBuilder:
    """
    Builds the cash flow movements for a paid installment
    """

    def __init__(
        self,
        loan: 'Loan',
        installment: 'Installment',
        result: CommissionResult,
        customer_name: str,
        route_description: Optional[str] = None
    ):
        self.loan = loan
        self.installment = installment
        self.result = result
        self.customer_name = customer_name
        self.route_description = route_description

    def _movement(self, creditor_id: str, user_id: str, flow_type: CashFlowType,
                  category: CashFlowCategory, amount: Money, description: str) -> CashFlowMovement:
        return CashFlowMovement(
            creditor_id=creditor_id,
            type=flow_type,
            category=category,
            amount=amount,
            description=description,
            user_id=user_id,
            loan_id=self.loan.id,
            installment_id=self.installment.id
        )

    def build_intermediator_commission(self, creditor_id: str, user_id: str) -> Optional[CashFlowMovement]:
        if not self.result.intermediator_commission.is_positive():
            return None

        route = f" - {self.route_description}" if self.route_description else ""
        return self._movement(
            creditor_id, user_id, CashFlowType.DEBIT, CashFlowCategory.INTERMEDIATOR_COMMISSION,
            self.result.intermediator_commission,
            f"Comissão intermediador ({self.loan.commission}%) - Parcela {self.installment.installment_number}"
            f" - {self.customer_name}{route} - Base: {self.result.calculation_method}"
        )

    def build_creditor_commission(self, creditor_id: str, user_id: str) -> Optional[CashFlowMovement]:
        if not self.result.creditor_commission.is_positive():
            return None

        return self._movement(
            creditor_id, user_id, CashFlowType.CREDIT, CashFlowCategory.COMMISSION,
            self.result.creditor_commission,
            f"Comissão credor ({self.loan.creditor_commission}%) - Parcela {self.installment.installment_number}"
            f" - {self.customer_name} - Base: {self.result.calculation_method}"
        )

    def build_manager_commission(self, creditor_id: str, user_id: str) -> Optional[CashFlowMovement]:
        if not self.result.manager_commission.is_positive():
            return None

        manager_rate = self.loan.interest_rate - self.loan.commission - self.loan.creditor_commission
        return self._movement(
            creditor_id, user_id, CashFlowType.CREDIT, CashFlowCategory.MANAGER_COMMISSION,
            self.result.manager_commission,
            f"Comissão gestor ({manager_rate:.2f}%) - Parcela {self.installment.installment_number}"
            f" - {self.customer_name} - Base: {self.result.calculation_method}"
        )

    def build_loan_return(self, creditor_id: str, user_id: str) -> Optional[CashFlowMovement]:
        if not self.result.creditor_return.is_positive():
            return None

        return self._movement(
            creditor_id, user_id, CashFlowType.CREDIT, CashFlowCategory.LOAN_RETURN,
            self.result.creditor_return,
            f"Retorno empréstimo - Parcela {self.installment.installment_number} - {self.customer_name}"
        )

    def build_all(self, creditor_id: str, user_id: str) -> List[CashFlowMovement]:
        movements = [
            self.build_intermediator_commission(creditor_id, user_id),
            self.build_creditor_commission(creditor_id, user_id),
            self.build_manager_commission(creditor_id, user_id),
            self.build_loan_return(creditor_id, user_id),
        ]
        return [movement for movement in movements if movement is not None]
