"""
Reporting Module

Loan profit and portfolio summaries built from stored loans and repayments.

Profit conventions:
    - Monthly loans earn their flat ``interest_rate`` once per recorded repayment.
    - Weekly loans earn whatever has been repaid beyond the principal.
    - Document charges count as profit for loans disbursed in the period.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .currency import Money, Currency
from .errors import ValidationError
from .loans import LoanManager
from .models import Loan, LoanStatus, Repayment, RepaymentType


@dataclass
class ReportResult:
    """Result of a report execution"""
    report_id: str
    generated_at: datetime
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    data: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form; Decimals become strings"""
        return {
            'report_id': self.report_id,
            'generated_at': self.generated_at.isoformat(),
            'period_start': self.period_start.isoformat() if self.period_start else None,
            'period_end': self.period_end.isoformat() if self.period_end else None,
            'data': [_stringify(row) for row in self.data],
            'totals': _stringify(self.totals),
            'metadata': self.metadata,
        }


def _stringify(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: (str(value) if isinstance(value, Decimal)
              else _stringify(value) if isinstance(value, dict) else value)
        for key, value in row.items()
    }


def _in_period(value: date, start: Optional[date], end: Optional[date]) -> bool:
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


def interest_profit(loan: Loan, repayments: List[Repayment]) -> Money:
    """Interest earned on a loan from the given repayments"""
    if loan.repayment_type == RepaymentType.MONTHLY:
        return loan.interest_rate * len(repayments)

    total_paid = Money(Decimal('0'), loan.currency)
    for repayment in repayments:
        total_paid = total_paid + repayment.amount
    excess = total_paid - loan.amount
    return excess if excess.is_positive() else Money(Decimal('0'), loan.currency)


class ReportingEngine:
    """
    Read-only reports over the loan book
    """

    def __init__(self, loan_manager: LoanManager, currency: Currency = Currency.INR):
        self.loan_manager = loan_manager
        self.currency = currency

    def loan_profit(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> ReportResult:
        """
        Profit per loan, optionally limited to a date range

        Repayments count when their paid date falls in the range; document
        charges count when the loan was disbursed in it. Bounds are inclusive.
        """
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")

        zero = Money(Decimal('0'), self.currency)
        total_interest = zero
        total_charges = zero
        data = []

        for loan in self.loan_manager.list_loans():
            if loan.currency != self.currency:
                continue

            repayments = [
                r for r in self.loan_manager.get_repayments(loan.id)
                if _in_period(r.paid_date, start_date, end_date)
            ]
            interest = interest_profit(loan, repayments)
            charge = (loan.document_charge
                      if _in_period(loan.disbursement_date, start_date, end_date) else zero)

            total_interest = total_interest + interest
            total_charges = total_charges + charge
            data.append({
                'loan_id': loan.id,
                'borrower_name': loan.borrower_name,
                'repayment_type': loan.repayment_type.value,
                'repayment_count': len(repayments),
                'interest_profit': interest.amount,
                'document_charge': charge.amount,
                'total_profit': (interest + charge).amount,
            })

        totals = {
            'interest_profit': total_interest.amount,
            'document_charges': total_charges.amount,
            'total_profit': (total_interest + total_charges).amount,
            'currency': self.currency.code,
        }

        return ReportResult(
            report_id="loan_profit",
            generated_at=datetime.now(timezone.utc),
            period_start=start_date,
            period_end=end_date,
            data=data,
            totals=totals,
            metadata={'row_count': len(data), 'currency': self.currency.code},
        )

    def portfolio_summary(self) -> ReportResult:
        """Loan counts by status and book-wide disbursed, outstanding and overdue totals"""
        zero = Money(Decimal('0'), self.currency)
        counts = {status.value: 0 for status in LoanStatus}
        total_disbursed = zero
        total_outstanding = zero
        total_overdue = zero
        missed_payments = 0
        loans_overdue = 0

        for loan in self.loan_manager.list_loans():
            if loan.currency != self.currency:
                continue
            counts[loan.status.value] += 1
            total_disbursed = total_disbursed + loan.amount
            if loan.status == LoanStatus.ACTIVE:
                total_outstanding = total_outstanding + loan.remaining_amount
                total_overdue = total_overdue + loan.overdue_amount
                missed_payments += loan.missed_payments
                if loan.overdue_amount.is_positive():
                    loans_overdue += 1

        summary = {
            'loan_count': sum(counts.values()),
            'loans_by_status': counts,
            'loans_overdue': loans_overdue,
            'total_disbursed': total_disbursed.amount,
            'total_outstanding': total_outstanding.amount,
            'total_overdue': total_overdue.amount,
            'missed_payments': missed_payments,
            'currency': self.currency.code,
        }

        return ReportResult(
            report_id="portfolio_summary",
            generated_at=datetime.now(timezone.utc),
            data=[summary],
            totals=summary,
            metadata={'row_count': 1, 'currency': self.currency.code},
        )
