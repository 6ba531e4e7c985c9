"""
Loan Module

Handles loan origination, one-shot installment generation, installment
payment, fines, payment reversal, settlement, renewal and loan lifecycle
management.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import logging
import uuid

from .amortization import LoanType, parse_loan_type, simulate_loan, compute_schedule
from .cashflow import CashFlowLedger
from .commission import CashFlowMovementBuilder, CommissionCalculator
from .config import LendingConfig, get_config
from .dates import today
from .errors import (
    InstallmentNotFoundError, InstallmentStateError, LoanNotFoundError,
    ScheduleAlreadyGeneratedError
)
from .logging_config import log_action
from .money import Money, Currency, to_decimal
from .periodicity import PeriodicityManager, generate_schedule
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger(__name__)


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "ACTIVE"          # Installments being collected
    COMPLETED = "COMPLETED"    # Every installment paid
    CANCELLED = "CANCELLED"    # Cancelled by the operator


class InstallmentStatus(Enum):
    """Installment states"""
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


@dataclass
class Loan(StorageRecord):
    """Loan with its repayment plan"""
    user_id: str                        # Operator that owns the loan
    customer_id: str
    loan_type: LoanType
    total_amount: Money                 # Amount to be repaid, interest included
    interest_rate: Decimal              # Percent
    installments: int
    installment_value: Money
    periodicity_id: str
    start_date: date
    principal: Optional[Money] = None   # Amount lent; None when only the total is known
    creditor_id: Optional[str] = None   # Capital source
    commission: Decimal = Decimal('0')              # Intermediary percent
    creditor_commission: Decimal = Decimal('0')     # Creditor percent
    status: LoanStatus = LoanStatus.ACTIVE
    next_payment_date: Optional[date] = None
    customer_name: Optional[str] = None

    def __post_init__(self):
        if self.installments < 1:
            raise ValueError(f"Loan must have at least one installment, got {self.installments}")

        if (self.principal is not None and self.interest_rate > 0
                and self.total_amount < self.principal):
            raise ValueError(f"Total amount {self.total_amount.to_string()} is below "
                             f"principal {self.principal.to_string()}")

        if self.next_payment_date is None:
            self.next_payment_date = self.start_date

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE


@dataclass
class Installment(StorageRecord):
    """One scheduled payment of a loan"""
    loan_id: str
    installment_number: int
    due_date: date
    amount: Money
    fine_amount: Money = None
    paid_amount: Money = None
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        zero_amount = Money.zero(self.amount.currency)
        if self.fine_amount is None:
            self.fine_amount = zero_amount
        if self.paid_amount is None:
            self.paid_amount = zero_amount

    @property
    def amount_due(self) -> Money:
        """Amount plus fines"""
        return self.amount + self.fine_amount

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID


@dataclass
class LoanSettlement:
    """Outcome of paying off a loan"""
    loan: Loan
    settled_installments: List[Installment]
    total_amount: Money         # Amounts plus fines of every installment
    total_paid: Money           # Already paid before settling
    remaining_amount: Money     # Received by the settlement


class LoanManager:
    """
    Manages loans from origination through the last installment
    """

    def __init__(
        self,
        storage: StorageInterface,
        periodicity_manager: PeriodicityManager,
        cash_flow_ledger: CashFlowLedger,
        config: Optional[LendingConfig] = None
    ):
        self.storage = storage
        self.periodicity_manager = periodicity_manager
        self.cash_flow_ledger = cash_flow_ledger
        self.config = config or get_config()

        self.loans_table = "loans"
        self.installments_table = "installments"

    @property
    def currency(self) -> Currency:
        return Currency[self.config.currency]

    def create_loan(
        self,
        user_id: str,
        customer_id: str,
        loan_type: LoanType,
        amount,
        installments: int,
        interest_rate,
        periodicity_id: str,
        start_date: date,
        creditor_id: Optional[str] = None,
        commission=Decimal('0'),
        creditor_commission=Decimal('0'),
        customer_name: Optional[str] = None,
        amount_is_total: bool = False,
        generate_installments: bool = True
    ) -> Loan:
        """
        Originate a loan and, by default, generate its installments

        Args:
            user_id: Operator creating the loan
            customer_id: Borrower
            loan_type: Amortization method
            amount: Amount lent, or the total to be repaid when amount_is_total
            installments: Number of installments
            interest_rate: Percent
            periodicity_id: Periodicity driving the due dates
            start_date: Due date of the first installment
            creditor_id: Capital source, if any
            commission: Intermediary commission percent
            creditor_commission: Creditor commission percent
            customer_name: Used in cash flow descriptions
            amount_is_total: The operator entered the total repayment amount;
                the principal is then left unknown and the total is split evenly
            generate_installments: Generate the schedule in the same transaction

        Returns:
            Created Loan object
        """
        loan_type = parse_loan_type(loan_type)
        interest_rate = to_decimal(interest_rate)
        commission = to_decimal(commission)
        creditor_commission = to_decimal(creditor_commission)

        if interest_rate < 0:
            raise ValueError("Interest rate cannot be negative")
        if commission < 0 or creditor_commission < 0:
            raise ValueError("Commission percents cannot be negative")
        if commission + creditor_commission > interest_rate:
            raise ValueError(f"Commissions ({commission + creditor_commission}%) exceed "
                             f"the interest rate ({interest_rate}%)")

        if not self.periodicity_manager.get_periodicity(periodicity_id):
            raise ValueError(f"Periodicity {periodicity_id} not found")

        amount = Money(to_decimal(amount), self.currency)
        if not amount.is_positive():
            raise ValueError("Loan amount must be positive")

        if amount_is_total:
            principal = None
            total_amount = amount
            installment_value = self._split_total(total_amount, installments)[0]
        else:
            simulation = simulate_loan(loan_type, amount.amount, installments, interest_rate,
                                       currency=self.currency)
            principal = amount
            total_amount = simulation.total_amount
            installment_value = simulation.installment_value

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            customer_id=customer_id,
            loan_type=loan_type,
            principal=principal,
            total_amount=total_amount,
            interest_rate=interest_rate,
            installments=installments,
            installment_value=installment_value,
            periodicity_id=periodicity_id,
            start_date=start_date,
            creditor_id=creditor_id,
            commission=commission,
            creditor_commission=creditor_commission,
            customer_name=customer_name
        )

        with self.storage.atomic():
            self._save_loan(loan)
            if generate_installments:
                self.generate_installments(loan.id)

        log_action(logger, "info", f"Loan originated: {total_amount.to_string()} in {installments} installments",
                   user_id=user_id, action="loan_created", resource=loan.id,
                   extra={"loan_type": loan_type.value, "customer_id": customer_id,
                          "interest_rate": str(interest_rate)})
        return loan

    def generate_installments(self, loan_id: str) -> List[Installment]:
        """
        Generate the loan's installments; allowed once per loan

        Raises:
            LoanNotFoundError: If the loan does not exist
            ScheduleAlreadyGeneratedError: If installments already exist
        """
        loan = self._require_loan(loan_id)

        existing = self.storage.find(self.installments_table, {"loan_id": loan_id})
        if existing:
            raise ScheduleAlreadyGeneratedError(loan_id, len(existing))

        periodicity = self.periodicity_manager.get_periodicity(loan.periodicity_id)
        if not periodicity:
            raise ValueError(f"Periodicity {loan.periodicity_id} not found")

        due_dates = generate_schedule(loan.start_date, loan.installments, periodicity.config)
        amounts = self._schedule_amounts(loan)

        now = datetime.now(timezone.utc)
        installments = [
            Installment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                installment_number=number,
                due_date=due_date,
                amount=amount
            )
            for number, (due_date, amount) in enumerate(zip(due_dates, amounts), start=1)
        ]

        self.storage.save_many(
            self.installments_table,
            ((installment.id, self._installment_to_dict(installment)) for installment in installments)
        )

        log_action(logger, "info", f"Generated {len(installments)} installments",
                   user_id=loan.user_id, action="installments_generated", resource=loan_id,
                   extra={"first_due_date": due_dates[0].isoformat(),
                          "last_due_date": due_dates[-1].isoformat()})
        return installments

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return self._loan_from_dict(data)
        return None

    def get_user_loans(self, user_id: str, status: Optional[LoanStatus] = None) -> List[Loan]:
        """Loans owned by an operator, newest first"""
        filters: Dict[str, Any] = {"user_id": user_id}
        if status:
            filters["status"] = status.value
        loans = [self._loan_from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    def get_installments(self, loan_id: str) -> List[Installment]:
        """Installments ordered by number"""
        installments = [self._installment_from_dict(data)
                        for data in self.storage.find(self.installments_table, {"loan_id": loan_id})]
        installments.sort(key=lambda installment: installment.installment_number)
        return installments

    def get_installment(self, loan_id: str, installment_id: str) -> Installment:
        data = self.storage.load(self.installments_table, installment_id)
        if not data or data.get("loan_id") != loan_id:
            raise InstallmentNotFoundError(installment_id, loan_id)
        return self._installment_from_dict(data)

    def pay_installment(
        self,
        loan_id: str,
        installment_id: str,
        amount,
        payment_date: Optional[datetime] = None,
        fine_amount=None
    ) -> Installment:
        """
        Register the payment of an installment

        Books the commission split to the creditor's cash flow and completes
        the loan when its last open installment is paid.

        Args:
            loan_id: Loan ID
            installment_id: Installment ID
            amount: Amount received
            payment_date: When it was received (defaults to now)
            fine_amount: Replaces the installment's fine when given

        Returns:
            Updated Installment
        """
        loan = self._require_loan(loan_id)
        if loan.status == LoanStatus.CANCELLED:
            raise InstallmentStateError(f"Loan {loan_id} is cancelled")

        installment = self.get_installment(loan_id, installment_id)
        if installment.is_paid:
            raise InstallmentStateError(f"Installment {installment.installment_number} is already paid")

        paid_amount = Money(to_decimal(amount), installment.amount.currency)
        if not paid_amount.is_positive():
            raise ValueError("Payment amount must be positive")

        if fine_amount is not None:
            fine = Money(to_decimal(fine_amount), installment.amount.currency)
            if fine.is_negative():
                raise ValueError("Fine amount cannot be negative")
            installment.fine_amount = fine

        if paid_amount > installment.amount_due:
            raise InstallmentStateError(
                f"Payment {paid_amount.to_string()} exceeds amount due {installment.amount_due.to_string()}"
            )

        installment.paid_amount = paid_amount
        installment.status = InstallmentStatus.PAID
        installment.paid_at = payment_date or datetime.now(timezone.utc)
        installment.updated_at = datetime.now(timezone.utc)

        with self.storage.atomic():
            self._save_installment(installment)
            self._book_commissions(loan, installment)
            self._refresh_loan_status(loan)

        log_action(logger, "info",
                   f"Installment {installment.installment_number} paid: {paid_amount.to_string()}",
                   user_id=loan.user_id, action="installment_paid", resource=installment_id)
        return installment

    def apply_fine(self, loan_id: str, installment_id: str, fine_amount, reason: Optional[str] = None) -> Installment:
        """
        Add a fine to an unpaid installment; fines accumulate

        Raises:
            InstallmentStateError: If the installment is already paid
        """
        loan = self._require_loan(loan_id)
        installment = self.get_installment(loan_id, installment_id)

        fine = Money(to_decimal(fine_amount), installment.amount.currency)
        if not fine.is_positive():
            raise ValueError("Fine amount must be greater than zero")
        if installment.is_paid:
            raise InstallmentStateError("Cannot add a fine to a paid installment")

        installment.fine_amount = installment.fine_amount + fine
        installment.updated_at = datetime.now(timezone.utc)
        self._save_installment(installment)

        log_action(logger, "info", f"Fine of {fine.to_string()} applied",
                   user_id=loan.user_id, action="fine_applied", resource=installment_id,
                   extra={"reason": reason} if reason else None)
        return installment

    def reverse_payment(self, loan_id: str, installment_id: str) -> Installment:
        """
        Undo an installment payment

        The installment goes back to PENDING and keeps its fine; the cash
        flow movements booked for it are removed.

        Raises:
            InstallmentStateError: If the installment is not paid
        """
        loan = self._require_loan(loan_id)
        installment = self.get_installment(loan_id, installment_id)
        if not installment.is_paid:
            raise InstallmentStateError("Only paid installments can be reversed")

        installment.paid_amount = Money.zero(installment.amount.currency)
        installment.status = InstallmentStatus.PENDING
        installment.paid_at = None
        installment.updated_at = datetime.now(timezone.utc)

        with self.storage.atomic():
            self._save_installment(installment)
            removed = self.cash_flow_ledger.remove_installment_movements(installment_id)
            self._refresh_loan_status(loan)

        log_action(logger, "info",
                   f"Installment {installment.installment_number} reversed, {removed} movement(s) removed",
                   user_id=loan.user_id, action="payment_reversed", resource=installment_id)
        return installment

    def mark_overdue(self, as_of: Optional[date] = None) -> int:
        """Flag PENDING installments of active loans due before as_of; returns how many changed"""
        if as_of is None:
            as_of = today(self.config.timezone)

        active_loans = {
            data["id"] for data in self.storage.find(self.loans_table, {"status": LoanStatus.ACTIVE.value})
        }

        changed = 0
        pending = self.storage.find(self.installments_table, {"status": InstallmentStatus.PENDING.value})
        with self.storage.atomic():
            for data in pending:
                installment = self._installment_from_dict(data)
                if installment.loan_id in active_loans and installment.due_date < as_of:
                    installment.status = InstallmentStatus.OVERDUE
                    installment.updated_at = datetime.now(timezone.utc)
                    self._save_installment(installment)
                    changed += 1

        if changed:
            log_action(logger, "info", f"{changed} installment(s) overdue as of {as_of.isoformat()}",
                       action="installments_overdue")
        return changed

    def cancel_loan(self, loan_id: str) -> Loan:
        """
        Cancel a loan

        Raises:
            InstallmentStateError: If the loan is already completed
        """
        loan = self._require_loan(loan_id)
        if loan.status == LoanStatus.COMPLETED:
            raise InstallmentStateError(f"Loan {loan_id} is already completed")

        loan.status = LoanStatus.CANCELLED
        loan.updated_at = datetime.now(timezone.utc)
        self._save_loan(loan)

        log_action(logger, "info", "Loan cancelled", user_id=loan.user_id,
                   action="loan_cancelled", resource=loan_id)
        return loan

    def settle_loan(self, loan_id: str, payment_date: Optional[datetime] = None) -> LoanSettlement:
        """
        Pay off every open installment of a loan at once

        Each PENDING or OVERDUE installment is paid in full (amount plus
        fine) and booked to the creditor's cash flow like a single payment;
        the loan ends COMPLETED.

        Args:
            loan_id: Loan ID
            payment_date: When the settlement was received (defaults to now)

        Returns:
            LoanSettlement with the totals before settling

        Raises:
            InstallmentStateError: If the loan is not active or has no installments
        """
        loan = self._require_loan(loan_id)
        if not loan.is_active:
            raise InstallmentStateError(f"Loan {loan_id} is {loan.status.value.lower()}")

        installments = self.get_installments(loan_id)
        if not installments:
            raise InstallmentStateError(f"Loan {loan_id} has no installments")

        currency = loan.total_amount.currency
        total_due = Money.sum((i.amount_due for i in installments), currency)
        total_paid = Money.sum((i.paid_amount for i in installments), currency)

        paid_at = payment_date or datetime.now(timezone.utc)
        settled = []
        with self.storage.atomic():
            for installment in installments:
                if installment.is_paid:
                    continue
                installment.paid_amount = installment.amount_due
                installment.status = InstallmentStatus.PAID
                installment.paid_at = paid_at
                installment.updated_at = datetime.now(timezone.utc)
                self._save_installment(installment)
                self._book_commissions(loan, installment)
                settled.append(installment)

            self._refresh_loan_status(loan)

        remaining = total_due - total_paid
        log_action(logger, "info", f"Loan settled: {remaining.to_string()} in {len(settled)} installment(s)",
                   user_id=loan.user_id, action="loan_settled", resource=loan_id)
        return LoanSettlement(
            loan=loan,
            settled_installments=settled,
            total_amount=total_due,
            total_paid=total_paid,
            remaining_amount=remaining
        )

    def renew_loan(self, loan_id: str, start_date: date) -> Loan:
        """
        Open a new loan with the terms of a completed one

        The new loan's schedule starts at start_date and is generated in the
        same transaction that stores the loan.

        Raises:
            InstallmentStateError: If the loan is not completed
        """
        original = self._require_loan(loan_id)
        if original.status != LoanStatus.COMPLETED:
            raise InstallmentStateError("Only completed loans can be renewed")

        now = datetime.now(timezone.utc)
        renewed = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=original.user_id,
            customer_id=original.customer_id,
            customer_name=original.customer_name,
            creditor_id=original.creditor_id,
            loan_type=original.loan_type,
            principal=original.principal,
            total_amount=original.total_amount,
            interest_rate=original.interest_rate,
            installments=original.installments,
            installment_value=original.installment_value,
            periodicity_id=original.periodicity_id,
            start_date=start_date,
            commission=original.commission,
            creditor_commission=original.creditor_commission
        )

        with self.storage.atomic():
            self._save_loan(renewed)
            self.generate_installments(renewed.id)

        log_action(logger, "info", f"Loan renewed from {loan_id}",
                   user_id=renewed.user_id, action="loan_renewed", resource=renewed.id,
                   extra={"renewed_from": loan_id, "start_date": start_date.isoformat()})
        return renewed

    def _require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise LoanNotFoundError(loan_id)
        return loan

    def _book_commissions(self, loan: Loan, installment: Installment) -> None:
        """Record the commission split of a paid installment in the creditor's cash flow"""
        if not loan.creditor_id or not self.config.enable_cash_flow:
            return
        result = CommissionCalculator.for_loan(loan, installment).calculate()
        builder = CashFlowMovementBuilder(loan, installment, result, loan.customer_name or loan.customer_id)
        self.cash_flow_ledger.record_movements(builder.build_all(loan.creditor_id, loan.user_id))

    def _split_total(self, total: Money, installments: int) -> List[Money]:
        """Split a total evenly; the last installment absorbs the rounding"""
        if installments < 1:
            raise ValueError(f"Installment count must be at least 1, got {installments}")
        share = total / installments
        return [share] * (installments - 1) + [total - share * (installments - 1)]

    def _schedule_amounts(self, loan: Loan) -> List[Money]:
        """Amount owed on each installment"""
        if loan.principal is None:
            return self._split_total(loan.total_amount, loan.installments)

        schedule = compute_schedule(loan.loan_type, loan.principal.amount, loan.interest_rate,
                                    loan.installments, loan.principal.currency)
        return [entry.total_amount for entry in schedule]

    def _refresh_loan_status(self, loan: Loan) -> None:
        """Complete or reopen the loan and move next_payment_date to the first open installment"""
        if loan.status == LoanStatus.CANCELLED:
            return

        open_installments = [i for i in self.get_installments(loan.id) if not i.is_paid]
        if open_installments:
            loan.status = LoanStatus.ACTIVE
            loan.next_payment_date = open_installments[0].due_date
        else:
            loan.status = LoanStatus.COMPLETED

        loan.updated_at = datetime.now(timezone.utc)
        self._save_loan(loan)

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, self._loan_to_dict(loan))

    def _save_installment(self, installment: Installment) -> None:
        self.storage.save(self.installments_table, installment.id, self._installment_to_dict(installment))

    def _loan_to_dict(self, loan: Loan) -> Dict[str, Any]:
        return {
            'id': loan.id,
            'created_at': loan.created_at.isoformat(),
            'updated_at': loan.updated_at.isoformat(),
            'user_id': loan.user_id,
            'customer_id': loan.customer_id,
            'customer_name': loan.customer_name,
            'creditor_id': loan.creditor_id,
            'loan_type': loan.loan_type.value,
            'currency': loan.total_amount.currency.code,
            'principal': str(loan.principal.amount) if loan.principal is not None else None,
            'total_amount': str(loan.total_amount.amount),
            'interest_rate': str(loan.interest_rate),
            'installments': loan.installments,
            'installment_value': str(loan.installment_value.amount),
            'periodicity_id': loan.periodicity_id,
            'start_date': loan.start_date.isoformat(),
            'next_payment_date': loan.next_payment_date.isoformat() if loan.next_payment_date else None,
            'status': loan.status.value,
            'commission': str(loan.commission),
            'creditor_commission': str(loan.creditor_commission),
        }

    def _loan_from_dict(self, data: Dict[str, Any]) -> Loan:
        currency = Currency[data.get('currency', 'BRL')]

        def get_money(key: str) -> Optional[Money]:
            value = data.get(key)
            return Money(Decimal(value), currency) if value is not None else None

        next_payment = data.get('next_payment_date')
        return Loan(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            customer_id=data['customer_id'],
            customer_name=data.get('customer_name'),
            creditor_id=data.get('creditor_id'),
            loan_type=LoanType(data['loan_type']),
            principal=get_money('principal'),
            total_amount=get_money('total_amount'),
            interest_rate=Decimal(data['interest_rate']),
            installments=data['installments'],
            installment_value=get_money('installment_value'),
            periodicity_id=data['periodicity_id'],
            start_date=date.fromisoformat(data['start_date']),
            next_payment_date=date.fromisoformat(next_payment) if next_payment else None,
            status=LoanStatus(data['status']),
            commission=Decimal(data.get('commission', '0')),
            creditor_commission=Decimal(data.get('creditor_commission', '0')),
        )

    def _installment_to_dict(self, installment: Installment) -> Dict[str, Any]:
        return {
            'id': installment.id,
            'created_at': installment.created_at.isoformat(),
            'updated_at': installment.updated_at.isoformat(),
            'loan_id': installment.loan_id,
            'installment_number': installment.installment_number,
            'due_date': installment.due_date.isoformat(),
            'currency': installment.amount.currency.code,
            'amount': str(installment.amount.amount),
            'fine_amount': str(installment.fine_amount.amount),
            'paid_amount': str(installment.paid_amount.amount),
            'status': installment.status.value,
            'paid_at': installment.paid_at.isoformat() if installment.paid_at else None,
        }

    def _installment_from_dict(self, data: Dict[str, Any]) -> Installment:
        currency = Currency[data.get('currency', 'BRL')]
        paid_at = data.get('paid_at')
        return Installment(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            installment_number=data['installment_number'],
            due_date=date.fromisoformat(data['due_date']),
            amount=Money(Decimal(data['amount']), currency),
            fine_amount=Money(Decimal(data['fine_amount']), currency),
            paid_amount=Money(Decimal(data['paid_amount']), currency),
            status=InstallmentStatus(data['status']),
            paid_at=datetime.fromisoformat(paid_at) if paid_at else None
        )
