"""
Loan and Repayment Records

Dataclasses and enums shared by the schedule engine, the loan manager and the
HTTP layer. A Loan carries its terms plus two derived fields
(``overdue_amount`` and ``missed_payments``) that are only ever overwritten by
a full recomputation. Repayments are append-only.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from .currency import Money
from .storage import StorageRecord


class RepaymentType(Enum):
    """Repayment cadence"""
    MONTHLY = "monthly"
    WEEKLY = "weekly"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return None


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"
    COMPLETED = "completed"
    CLOSED = "closed"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return None


class PaymentType(Enum):
    """What a repayment settled for its period"""
    FULL = "full"
    INTEREST_ONLY = "interest_only"

    @classmethod
    def _missing_(cls, value):
        # Accept camelCase ("interestOnly") and any casing from API clients
        if isinstance(value, str):
            normalized = value.strip().replace("-", "_").replace(" ", "_").lower()
            if normalized == "interestonly":
                return cls.INTEREST_ONLY
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class PeriodStatus(Enum):
    """Status of one scheduled period"""
    PAID = "paid"
    INTEREST_ONLY_PAID = "interest_only_paid"
    MISSED = "missed"
    PENDING = "pending"
    UPCOMING = "upcoming"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().replace("-", "_").lower()
            if normalized in ("interestonly", "interest_only"):
                return cls.INTEREST_ONLY_PAID
            for member in cls:
                if member.value == normalized:
                    return member
        return None


@dataclass
class Loan(StorageRecord):
    """A disbursed loan and its derived overdue position"""
    borrower_name: str
    amount: Money                       # Principal
    interest_rate: Money                # Flat charge per period, not a percentage
    duration: int                       # Number of periods
    disbursement_date: date
    repayment_type: RepaymentType
    installment_amount: Money
    status: LoanStatus = LoanStatus.ACTIVE
    current_month: int = 0              # Periods elapsed; 0 means not yet activated
    next_payment_date: Optional[date] = None
    remaining_amount: Money = None
    overdue_amount: Money = None
    missed_payments: int = 0
    document_charge: Money = None
    purpose: Optional[str] = None

    def __post_init__(self):
        currency = self.amount.currency
        if self.remaining_amount is None:
            self.remaining_amount = self.amount
        if self.overdue_amount is None:
            self.overdue_amount = Money(Decimal('0'), currency)
        if self.document_charge is None:
            self.document_charge = Money(Decimal('0'), currency)

    @property
    def currency(self):
        return self.amount.currency

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE


@dataclass
class Repayment(StorageRecord):
    """A single payment against one period of a loan"""
    loan_id: str
    period: int
    amount: Money
    paid_date: date
    payment_type: PaymentType = PaymentType.FULL

    @property
    def is_full(self) -> bool:
        return self.payment_type == PaymentType.FULL
