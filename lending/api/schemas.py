"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from ..money import Money, Currency
from ..periodicity import PeriodicityConfig


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field("BRL", description="Currency code (BRL, USD)")

    def to_money(self) -> Money:
        return Money(Decimal(self.amount), Currency[self.currency])

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


# Periodicity schemas
class PeriodicityConfigModel(BaseModel):
    interval_type: str = Field(..., description="DAILY, WEEKLY, MONTHLY or YEARLY")
    interval_value: int = Field(1, ge=1)
    allowed_weekdays: Optional[List[int]] = Field(None, description="0 = Sunday .. 6 = Saturday")
    allowed_month_days: Optional[List[int]] = None
    allowed_months: Optional[List[int]] = None

    def to_config(self) -> PeriodicityConfig:
        return PeriodicityConfig.from_dict(self.model_dump())


class CreatePeriodicityRequest(BaseModel):
    name: str
    description: Optional[str] = None
    config: PeriodicityConfigModel


class UpdatePeriodicityRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[PeriodicityConfigModel] = None


class SchedulePreviewRequest(BaseModel):
    config: PeriodicityConfigModel
    start_date: str  # ISO date string
    installments: int = Field(..., ge=1)
    locale: Optional[str] = None


# Simulation schemas
class SimulateLoanRequest(BaseModel):
    loan_type: str
    amount: str  # Decimal as string
    installments: int = Field(..., ge=1)
    interest_rate: str
    periodicity_id: Optional[str] = None
    start_date: Optional[str] = None


class RecoverPrincipalRequest(BaseModel):
    total_amount: str
    loan_type: str
    installments: int = Field(..., ge=1)
    interest_rate: str
    commission: str = "0"
    creditor_commission: str = "0"


# Loan schemas
class CreateLoanRequest(BaseModel):
    user_id: str
    customer_id: str
    customer_name: Optional[str] = None
    creditor_id: Optional[str] = None
    loan_type: str
    amount: str
    amount_is_total: bool = False
    installments: int = Field(..., ge=1)
    interest_rate: str
    periodicity_id: str
    start_date: str
    commission: str = "0"
    creditor_commission: str = "0"


class PayInstallmentRequest(BaseModel):
    amount: str
    payment_date: Optional[str] = None  # ISO date or datetime
    fine_amount: Optional[str] = None


class ApplyFineRequest(BaseModel):
    fine_amount: str
    reason: Optional[str] = None


class SettleLoanRequest(BaseModel):
    payment_date: Optional[str] = None  # ISO date or datetime


class RenewLoanRequest(BaseModel):
    start_date: str  # ISO date string


# Cash flow schemas
class ManualCashFlowRequest(BaseModel):
    type: str = Field(..., description="CREDIT or DEBIT")
    category: str = Field(..., description="DEPOSIT, WITHDRAWAL, COMMISSION or LOAN_DISBURSEMENT")
    amount: MoneyModel
    user_id: str
    description: Optional[str] = None
