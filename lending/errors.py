"""
Lending Exceptions

Domain errors raised by the schedule engine and the loan lifecycle. Validation
errors subclass ValueError so callers that only catch ValueError keep working.
"""


class LendingError(Exception):
    """Base class for lending errors"""


class ConfigurationError(LendingError, ValueError):
    """Invalid engine configuration (periodicity, loan type, search bounds)"""


class InvalidPeriodicityError(ConfigurationError):
    """Periodicity definition that cannot produce a schedule"""


class LoanNotFoundError(LendingError, LookupError):
    """Loan does not exist"""

    def __init__(self, loan_id: str):
        super().__init__(f"Loan {loan_id} not found")
        self.loan_id = loan_id


class InstallmentNotFoundError(LendingError, LookupError):
    """Installment does not exist or belongs to another loan"""

    def __init__(self, installment_id: str, loan_id: str = None):
        message = f"Installment {installment_id} not found"
        if loan_id:
            message += f" for loan {loan_id}"
        super().__init__(message)
        self.installment_id = installment_id
        self.loan_id = loan_id


class InstallmentStateError(LendingError, ValueError):
    """Operation not allowed in the installment's current status"""


class ScheduleAlreadyGeneratedError(LendingError, ValueError):
    """Installments were already generated for the loan"""

    def __init__(self, loan_id: str, count: int):
        super().__init__(f"Loan {loan_id} already has {count} installments")
        self.loan_id = loan_id
        self.count = count
