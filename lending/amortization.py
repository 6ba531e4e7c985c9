"""
Amortization Module

Per-installment principal/interest breakdown for the five loan types offered
to customers, loan simulation totals, and the inverse search that recovers the
lent principal from a loan's total repayment amount.

All math is done in Decimal. Each component is rounded to cents as it is
produced and the final installment absorbs the rounding, so the principal
components always add up to the principal exactly.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence
from enum import Enum
import logging

from .config import get_config
from .errors import ConfigurationError
from .money import Money, Currency, round_cents, to_decimal
from .periodicity import PeriodicityConfig, generate_schedule


logger = logging.getLogger(__name__)


class LoanType(Enum):
    """Amortization methods offered at origination"""
    PRICE = "PRICE"                                          # Equal installments (French system)
    SAC = "SAC"                                              # Constant amortization
    SIMPLE_INTEREST = "SIMPLE_INTEREST"                      # Interest charged once, split evenly
    RECURRING_SIMPLE_INTEREST = "RECURRING_SIMPLE_INTEREST"  # Interest on the original principal every period
    INTEREST_ONLY = "INTEREST_ONLY"                          # Interest only, principal with the last installment


LOAN_TYPE_LABELS = {
    LoanType.PRICE: 'PRICE - Prestações Fixas',
    LoanType.SAC: 'SAC - Sistema de Amortização Constante',
    LoanType.SIMPLE_INTEREST: 'Juros Simples',
    LoanType.RECURRING_SIMPLE_INTEREST: 'Juros Simples Recorrente',
    LoanType.INTEREST_ONLY: 'Só Juros - Capital no Final',
}

# Loan types whose commission base is the installment amount
SIMPLE_INTEREST_TYPES = (LoanType.SIMPLE_INTEREST, LoanType.RECURRING_SIMPLE_INTEREST)


def parse_loan_type(value: Any) -> LoanType:
    if isinstance(value, LoanType):
        return value
    try:
        return LoanType(str(value).strip().upper())
    except ValueError:
        raise ConfigurationError(f"Unsupported loan type: {value!r}")


@dataclass
class ScheduleEntry:
    """Single row of an amortization schedule"""
    installment_number: int
    principal_amount: Money
    interest_amount: Money
    total_amount: Money
    remaining_balance: Money
    due_date: Optional[date] = None

    def __post_init__(self):
        calculated_total = self.principal_amount + self.interest_amount
        if abs(calculated_total.amount - self.total_amount.amount) > Decimal('0.01'):
            raise ValueError(f"Installment total {self.total_amount.to_string()} does not equal "
                             f"principal {self.principal_amount.to_string()} + "
                             f"interest {self.interest_amount.to_string()}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'installment_number': self.installment_number,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'principal_amount': str(self.principal_amount.amount),
            'interest_amount': str(self.interest_amount.amount),
            'total_amount': str(self.total_amount.amount),
            'remaining_balance': str(self.remaining_balance.amount),
        }


@dataclass
class LoanSimulation:
    """Totals and schedule of a simulated loan"""
    loan_type: LoanType
    principal: Money
    interest_rate: Decimal
    total_amount: Money
    total_interest: Money
    installment_value: Money
    effective_rate: Decimal   # Percent over the whole loan
    entries: List[ScheduleEntry] = field(default_factory=list)

    @property
    def installments(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class PrincipalEstimate:
    """Principal recovered from a total, flagged when the search did not converge"""
    principal: Decimal
    iterations: int
    approximate: bool

    @property
    def rounded(self) -> Decimal:
        return round_cents(self.principal)


def _entry(number: int, principal: Decimal, interest: Decimal, balance: Decimal,
           currency: Currency) -> ScheduleEntry:
    return ScheduleEntry(
        installment_number=number,
        principal_amount=Money(principal, currency),
        interest_amount=Money(interest, currency),
        total_amount=Money(principal + interest, currency),
        remaining_balance=Money(balance, currency)
    )


def _price_schedule(principal: Decimal, count: int, rate: Decimal, currency: Currency) -> List[ScheduleEntry]:
    """
    Equal installments: P * [i(1+i)^n] / [(1+i)^n - 1]

    Interest is taken from the unrounded balance so the cent rounding of the
    payment does not compound; the last row only absorbs the rounding
    accumulated row by row.
    """
    if rate == Decimal('0'):
        exact_payment = principal / count
    else:
        factor = (Decimal('1') + rate) ** count
        exact_payment = principal * (rate * factor) / (factor - Decimal('1'))
    payment = round_cents(exact_payment)

    entries = []
    balance = principal
    exact_balance = principal
    for number in range(1, count + 1):
        exact_interest = exact_balance * rate
        interest = round_cents(exact_interest)
        if number == count:
            amortization = balance
        else:
            amortization = min(payment - interest, balance)
        balance -= amortization
        exact_balance -= exact_payment - exact_interest
        entries.append(_entry(number, amortization, interest, balance, currency))
    return entries


def _sac_schedule(principal: Decimal, count: int, rate: Decimal, currency: Currency) -> List[ScheduleEntry]:
    """Constant amortization with interest on the declining balance"""
    amortization = round_cents(principal / count)

    entries = []
    balance = principal
    for number in range(1, count + 1):
        interest = round_cents(balance * rate)
        current = balance if number == count else min(amortization, balance)
        balance -= current
        entries.append(_entry(number, current, interest, balance, currency))
    return entries


def _simple_interest_schedule(principal: Decimal, count: int, rate: Decimal,
                              currency: Currency) -> List[ScheduleEntry]:
    """Interest charged once on the principal, both split evenly"""
    total_interest = round_cents(principal * rate)
    amortization = round_cents(principal / count)
    interest_share = round_cents(total_interest / count)

    entries = []
    balance = principal
    interest_left = total_interest
    for number in range(1, count + 1):
        if number == count:
            current, interest = balance, interest_left
        else:
            current, interest = min(amortization, balance), min(interest_share, interest_left)
        balance -= current
        interest_left -= interest
        entries.append(_entry(number, current, interest, balance, currency))
    return entries


def _recurring_simple_interest_schedule(principal: Decimal, count: int, rate: Decimal,
                                        currency: Currency) -> List[ScheduleEntry]:
    """Interest on the original principal every period"""
    interest = round_cents(principal * rate)
    amortization = round_cents(principal / count)

    entries = []
    balance = principal
    for number in range(1, count + 1):
        current = balance if number == count else min(amortization, balance)
        balance -= current
        entries.append(_entry(number, current, interest, balance, currency))
    return entries


def _interest_only_schedule(principal: Decimal, count: int, rate: Decimal,
                            currency: Currency) -> List[ScheduleEntry]:
    """Interest every period, full principal with the last installment"""
    interest = round_cents(principal * rate)

    entries = [_entry(number, Decimal('0'), interest, principal, currency)
               for number in range(1, count)]
    entries.append(_entry(count, principal, interest, Decimal('0'), currency))
    return entries


_SCHEDULE_BUILDERS = {
    LoanType.PRICE: _price_schedule,
    LoanType.SAC: _sac_schedule,
    LoanType.SIMPLE_INTEREST: _simple_interest_schedule,
    LoanType.RECURRING_SIMPLE_INTEREST: _recurring_simple_interest_schedule,
    LoanType.INTEREST_ONLY: _interest_only_schedule,
}


def compute_schedule(
    loan_type: LoanType,
    principal,
    interest_rate,
    installment_count: int,
    currency: Currency = Currency.BRL
) -> List[ScheduleEntry]:
    """
    Compute the principal/interest breakdown of every installment

    Args:
        loan_type: Amortization method
        principal: Amount lent (Decimal, str, int or Money)
        interest_rate: Percent; per period for PRICE, SAC, recurring simple
            interest and interest-only loans, applied once for simple interest
        installment_count: Number of installments (>= 1)
        currency: Currency of the resulting amounts

    Returns:
        List of ScheduleEntry with due_date left empty
    """
    loan_type = parse_loan_type(loan_type)
    if installment_count < 1:
        raise ValueError(f"Installment count must be at least 1, got {installment_count}")

    principal = round_cents(to_decimal(principal))
    rate = to_decimal(interest_rate) / Decimal('100')

    return _SCHEDULE_BUILDERS[loan_type](principal, installment_count, rate, currency)


def simulate_loan(
    loan_type: LoanType,
    requested_amount,
    installments: int,
    interest_rate,
    periodicity: Optional[PeriodicityConfig] = None,
    start_date: Optional[date] = None,
    currency: Currency = Currency.BRL
) -> LoanSimulation:
    """
    Simulate a loan: schedule, totals and, given a periodicity and start
    date, the due date of each installment.
    """
    loan_type = parse_loan_type(loan_type)
    principal = Money(to_decimal(requested_amount), currency)
    if not principal.is_positive():
        raise ValueError("Requested amount must be positive")

    entries = compute_schedule(loan_type, principal.amount, interest_rate, installments, currency)

    if periodicity is not None and start_date is not None:
        due_dates = generate_schedule(start_date, installments, periodicity)
        entries = [replace(entry, due_date=due_date) for entry, due_date in zip(entries, due_dates)]

    total_amount = Money.sum((entry.total_amount for entry in entries), currency)
    total_interest = total_amount - principal

    if loan_type == LoanType.INTEREST_ONLY:
        installment_value = entries[0].interest_amount
    else:
        installment_value = entries[0].total_amount

    effective_rate = ((total_amount.amount / principal.amount - Decimal('1')) * Decimal('100')).quantize(Decimal('0.0001'))

    return LoanSimulation(
        loan_type=loan_type,
        principal=principal,
        interest_rate=to_decimal(interest_rate),
        total_amount=total_amount,
        total_interest=total_interest,
        installment_value=installment_value,
        effective_rate=effective_rate,
        entries=entries
    )


def recover_principal_from_total(
    total_amount,
    loan_type: LoanType,
    installment_count: int,
    interest_rate,
    commission_percents: Sequence = (),
    lower_ratio=None,
    max_iterations: Optional[int] = None,
    tolerance=None
) -> PrincipalEstimate:
    """
    Recover the lent principal from a loan's total repayment amount.

    Bisects [total * lower_ratio, total] looking for the candidate whose
    estimated total, candidate * (1 + rate / 100), is within tolerance of the
    known total. The estimate is a linear model, not the loan type's real
    schedule; ledger entries already booked depend on it, so it stays. When
    the iterations run out the last midpoint is returned with
    approximate=True.

    Raises:
        ValueError: If the commission percents add up to more than the rate
    """
    loan_type = parse_loan_type(loan_type)
    if installment_count < 1:
        raise ValueError(f"Installment count must be at least 1, got {installment_count}")

    config = get_config()
    if lower_ratio is None:
        lower_ratio = config.principal_search_lower_ratio
    if max_iterations is None:
        max_iterations = config.principal_search_max_iterations
    if tolerance is None:
        tolerance = config.principal_search_tolerance

    total = to_decimal(total_amount)
    rate = to_decimal(interest_rate)
    tolerance = to_decimal(tolerance)

    commission_total = sum((to_decimal(p) for p in commission_percents), Decimal('0'))
    if commission_total > rate:
        raise ValueError(f"Commissions ({commission_total}%) exceed the interest rate ({rate}%)")

    growth = Decimal('1') + rate / Decimal('100')
    low = total * to_decimal(lower_ratio)
    high = total
    candidate = total

    for iteration in range(1, max_iterations + 1):
        candidate = (low + high) / 2
        difference = candidate * growth - total

        logger.debug(f"Principal search {loan_type.value} iteration {iteration}: "
                     f"candidate={candidate:.2f} diff={difference:.2f}")

        if abs(difference) < tolerance:
            return PrincipalEstimate(principal=candidate, iterations=iteration, approximate=False)

        if difference > 0:
            high = candidate
        else:
            low = candidate

    logger.debug(f"Principal search did not converge for total {total}; using {candidate:.2f}")
    return PrincipalEstimate(principal=candidate, iterations=max_iterations, approximate=True)
