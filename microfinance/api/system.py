"""
Application wiring

LoanSystem builds storage, audit trail, managers and the optional overdue
scheduler from configuration. The FastAPI app holds one instance on
``app.state``; routes reach it through ``get_loan_system``.
"""

from typing import Optional

from fastapi import Request

from ..audit import AuditTrail, AuditEventType
from ..config import MicrofinanceConfig, get_config
from ..currency import Currency
from ..loans import LoanManager
from ..reporting import ReportingEngine
from ..scheduler import OverdueScheduler
from ..storage import InMemoryStorage, SQLiteStorage, StorageInterface


class LoanSystem:
    """Loan engine with all components initialized"""

    def __init__(
        self,
        config: Optional[MicrofinanceConfig] = None,
        storage: Optional[StorageInterface] = None
    ):
        self.config = config or get_config()

        # Initialize storage
        if storage is not None:
            self.storage = storage
        elif self.config.use_sqlite:
            self.storage = SQLiteStorage(self.config.database_path)
        else:
            self.storage = InMemoryStorage()

        self.currency = Currency[self.config.default_currency.upper()]
        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None

        self.loan_manager = LoanManager(
            self.storage,
            self.audit_trail,
            default_currency=self.currency,
            schedule_visibility_days=self.config.schedule_visibility_days
        )
        self.reporting_engine = ReportingEngine(self.loan_manager, self.currency)
        self.scheduler = OverdueScheduler(
            self.loan_manager,
            interval_seconds=self.config.overdue_refresh_interval_seconds
        )

        if self.audit_trail is not None:
            self.audit_trail.log_event(
                event_type=AuditEventType.SYSTEM_START,
                entity_type="system",
                entity_id="microfinance",
                metadata={"storage": type(self.storage).__name__}
            )

    def close(self) -> None:
        if self.scheduler.is_running():
            self.scheduler.stop()
        self.storage.close()


# Dependency to get the loan system
def get_loan_system(request: Request) -> LoanSystem:
    return request.app.state.system
