"""
Shared API dependencies
"""

from typing import Optional

from fastapi import HTTPException

from ..cashflow import CashFlowLedger
from ..config import LendingConfig, get_config
from ..loans import LoanManager
from ..logging_config import setup_logging_from_config
from ..periodicity import PeriodicityManager
from ..storage import StorageInterface, create_storage


class LendingSystem:
    """Lending back office with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[LendingConfig] = None):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or create_storage(self.config.database_url)

        # Initialize components
        self.periodicity_manager = PeriodicityManager(self.storage)
        self.cash_flow_ledger = CashFlowLedger(self.storage)
        self.loan_manager = LoanManager(
            self.storage, self.periodicity_manager, self.cash_flow_ledger, self.config
        )

        self.periodicity_manager.seed_defaults()


_lending_system: Optional[LendingSystem] = None


# Dependency to get lending system
def get_lending_system() -> LendingSystem:
    global _lending_system
    if _lending_system is None:
        config = get_config()
        setup_logging_from_config(config)
        _lending_system = LendingSystem(config=config)
    return _lending_system


def to_http_error(error: Exception) -> HTTPException:
    """Map a domain error to the HTTP status the API reports"""
    if isinstance(error, LookupError):
        return HTTPException(status_code=404, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))
