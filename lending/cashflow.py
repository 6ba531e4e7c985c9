"""
Cash Flow Module

Per-creditor ledger of money movements: manual deposits and withdrawals,
loan disbursements, and the commission/return movements booked when an
installment is paid. Balances are derived from the entries.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from enum import Enum
import logging
import uuid

from .logging_config import log_action
from .money import Money, Currency
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger(__name__)


class CashFlowType(Enum):
    """Direction of a movement from the creditor's point of view"""
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class CashFlowCategory(Enum):
    """What a movement represents"""
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    LOAN_DISBURSEMENT = "LOAN_DISBURSEMENT"
    LOAN_RETURN = "LOAN_RETURN"
    COMMISSION = "COMMISSION"
    INTERMEDIATOR_COMMISSION = "INTERMEDIATOR_COMMISSION"
    MANAGER_COMMISSION = "MANAGER_COMMISSION"


# Categories an operator may record by hand
MANUAL_CATEGORIES = (
    CashFlowCategory.DEPOSIT,
    CashFlowCategory.WITHDRAWAL,
    CashFlowCategory.COMMISSION,
    CashFlowCategory.LOAN_DISBURSEMENT,
)


@dataclass
class CashFlowMovement:
    """A movement to be booked, before it gets an id"""
    creditor_id: str
    type: CashFlowType
    category: CashFlowCategory
    amount: Money
    description: str
    user_id: str
    loan_id: Optional[str] = None
    installment_id: Optional[str] = None

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValueError(f"Cash flow amount must be positive, got {self.amount.to_string()}")


@dataclass
class CashFlowEntry(StorageRecord):
    """Booked movement"""
    creditor_id: str
    type: CashFlowType
    category: CashFlowCategory
    amount: Money
    description: str
    user_id: str
    loan_id: Optional[str] = None
    installment_id: Optional[str] = None

    @property
    def signed_amount(self) -> Money:
        return self.amount if self.type == CashFlowType.CREDIT else -self.amount


class CashFlowLedger:
    """
    Books and queries creditor cash flow
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.cash_flow_table = "cash_flow"

    def record_movement(self, movement: CashFlowMovement) -> CashFlowEntry:
        """Book a single movement"""
        now = datetime.now(timezone.utc)
        entry = CashFlowEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            creditor_id=movement.creditor_id,
            type=movement.type,
            category=movement.category,
            amount=movement.amount,
            description=movement.description,
            user_id=movement.user_id,
            loan_id=movement.loan_id,
            installment_id=movement.installment_id
        )
        self.storage.save(self.cash_flow_table, entry.id, self._entry_to_dict(entry))

        log_action(logger, "debug",
                   f"{entry.type.value} {entry.category.value} {entry.amount.to_string()}",
                   user_id=entry.user_id, action="cash_flow_recorded", resource=entry.creditor_id)
        return entry

    def record_movements(self, movements: Iterable[CashFlowMovement]) -> List[CashFlowEntry]:
        """Book several movements in one atomic block"""
        with self.storage.atomic():
            return [self.record_movement(movement) for movement in movements]

    def record_manual_entry(
        self,
        creditor_id: str,
        flow_type: CashFlowType,
        category: CashFlowCategory,
        amount: Money,
        user_id: str,
        description: Optional[str] = None
    ) -> CashFlowEntry:
        """
        Book a movement entered by an operator

        Raises:
            ValueError: If the category is reserved for installment payments
        """
        if category not in MANUAL_CATEGORIES:
            raise ValueError(f"Category {category.value} cannot be recorded manually")

        return self.record_movement(CashFlowMovement(
            creditor_id=creditor_id,
            type=flow_type,
            category=category,
            amount=amount,
            description=description or category.value,
            user_id=user_id
        ))

    def get_entries(
        self,
        creditor_id: Optional[str] = None,
        flow_type: Optional[CashFlowType] = None,
        installment_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[CashFlowEntry]:
        """Entries newest first, optionally filtered"""
        filters: Dict[str, Any] = {}
        if creditor_id:
            filters['creditor_id'] = creditor_id
        if flow_type:
            filters['type'] = flow_type.value
        if installment_id:
            filters['installment_id'] = installment_id

        entries = [self._entry_from_dict(data)
                   for data in self.storage.find(self.cash_flow_table, filters)]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[offset:offset + limit]

    def get_balance(self, creditor_id: str, currency: Currency = Currency.BRL) -> Money:
        """Credits minus debits for a creditor"""
        entries = [self._entry_from_dict(data)
                   for data in self.storage.find(self.cash_flow_table, {'creditor_id': creditor_id})]
        return Money.sum((entry.signed_amount for entry in entries), currency)

    def remove_installment_movements(
        self,
        installment_id: str,
        category: Optional[CashFlowCategory] = None
    ) -> int:
        """Delete the movements booked for an installment, returning how many"""
        filters: Dict[str, Any] = {'installment_id': installment_id}
        if category:
            filters['category'] = category.value

        removed = self.storage.delete_where(self.cash_flow_table, filters)
        log_action(logger, "info", f"Removed {removed} cash flow movement(s)",
                   action="cash_flow_removed", resource=installment_id)
        return removed

    def _entry_to_dict(self, entry: CashFlowEntry) -> Dict[str, Any]:
        return {
            'id': entry.id,
            'created_at': entry.created_at.isoformat(),
            'updated_at': entry.updated_at.isoformat(),
            'creditor_id': entry.creditor_id,
            'type': entry.type.value,
            'category': entry.category.value,
            'amount': str(entry.amount.amount),
            'currency': entry.amount.currency.code,
            'description': entry.description,
            'user_id': entry.user_id,
            'loan_id': entry.loan_id,
            'installment_id': entry.installment_id,
        }

    def _entry_from_dict(self, data: Dict[str, Any]) -> CashFlowEntry:
        return CashFlowEntry(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            creditor_id=data['creditor_id'],
            type=CashFlowType(data['type']),
            category=CashFlowCategory(data['category']),
            amount=Money(Decimal(data['amount']), Currency[data.get('currency', 'BRL')]),
            description=data['description'],
            user_id=data['user_id'],
            loan_id=data.get('loan_id'),
            installment_id=data.get('installment_id')
        )
